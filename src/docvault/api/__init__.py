"""HTTP surface of the document vault."""

from docvault.api.app import create_app

__all__ = ["create_app"]
