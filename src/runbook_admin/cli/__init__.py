"""Command-line interface for runbook-admin."""

from runbook_admin.cli.app import app

__all__ = ["app"]
