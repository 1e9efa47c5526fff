"""Allow ``python -m dataconnect_runner``."""

from .cli.main import app

if __name__ == "__main__":
    app()
