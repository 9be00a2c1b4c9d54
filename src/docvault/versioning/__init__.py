"""Document version lineage."""

from docvault.versioning.engine import VersionContent, VersionEngine

__all__ = ["VersionContent", "VersionEngine"]
