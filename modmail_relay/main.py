# main.py
from .interfaces.discord_bot import run

if __name__ == '__main__':
    run()
