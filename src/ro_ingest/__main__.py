"""Allow ``python -m ro_ingest``."""

from ro_ingest.cli import app

if __name__ == "__main__":
    app()
