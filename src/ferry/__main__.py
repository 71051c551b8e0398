"""``python -m ferry``."""

from ferry.cli.app import app

app(prog_name="ferry")
