"""Process entry points for the document vault."""
