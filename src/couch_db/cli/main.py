"""Main CLI entry point."""

import logging
from pathlib import Path

import click
from dotenv import load_dotenv

from couch_db import __version__
from couch_db.client.config import CouchConfig

# Load .env from cwd
_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


@click.group()
@click.version_option(version=__version__, prog_name="couch")
def cli():
    """CouchDB CLI - Inspect servers and query databases."""
    logging.basicConfig(
        level=CouchConfig().log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )


def setup_cli():
    """Register all commands."""
    from .find import find
    from .server import dbs, info, uuids

    cli.add_command(info)
    cli.add_command(uuids)
    cli.add_command(dbs)
    cli.add_command(find)


setup_cli()


def main():
    """Entry point for couch CLI."""
    cli()


if __name__ == "__main__":
    main()
