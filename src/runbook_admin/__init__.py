"""
Runbook Admin - supervised execution of runn runbooks.

The execution core lives in :mod:`runbook_admin.execution`; shared
primitives (logging, errors, hashing, settings) in :mod:`runbook_admin.core`.
"""

__version__ = "0.1.0"
