"""Allow ``python -m cronlock``."""

from cronlock.cli.app import app

app()
