"""relaybot CLI entry point."""

from relaybot.cli import app

if __name__ == "__main__":
    app()
