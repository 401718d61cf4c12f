"""Allow ``python -m blockseq``; batch units are spawned this way."""

from blockseq.cli.app import app

if __name__ == "__main__":
    app()
