"""Allow ``python -m storyloom``."""

from storyloom.cli.app import app

if __name__ == "__main__":
    app()
