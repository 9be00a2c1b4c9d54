"""Versioned document vault.

Uploads are queued and ingested asynchronously into a pluggable object
store; every revision stays retrievable and revertible.
"""

__version__ = "0.1.0"
