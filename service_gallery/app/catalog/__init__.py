"""
Key catalog for the Gallery service.

Maps each supported emoji to the keyword groups used for discovery.
"""

from .key_table import KeyEntry, KeyTable

__all__ = ["KeyEntry", "KeyTable"]
