"""
Deterministic hashing and identifier generation.

Manifesto:
    Two kinds of identifiers flow through the execution core:

    - **runbook_id:** content hash of the runbook path. Same path, same id,
      across processes and restarts. SHA-1 hex, the same digest runn
      itself uses for runbook ids, so ids can be cross-referenced with
      the tool's own output.
    - **execution id:** opaque, random, unique per execution attempt.

Examples:
    >>> compute_runbook_id("runbooks/health.yml") == compute_runbook_id("runbooks/health.yml")
    True
    >>> len(generate_execution_id())
    12

Tags:
    hashing, identifiers, runbook-admin
"""

import hashlib
import uuid


def compute_runbook_id(runbook_path: str) -> str:
    """Return the SHA-1 hex digest of ``runbook_path``.

    The path is hashed as given; no normalization is applied, so
    ``"./a.yml"`` and ``"a.yml"`` yield different ids.
    """
    return hashlib.sha1(runbook_path.encode("utf-8")).hexdigest()


def generate_execution_id(length: int = 12) -> str:
    """Return a random hex identifier for one execution attempt."""
    return uuid.uuid4().hex[:length]
