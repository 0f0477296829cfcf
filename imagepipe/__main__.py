"""Allow ``python -m imagepipe``."""

from imagepipe.cli.main import cli_entry

cli_entry()
