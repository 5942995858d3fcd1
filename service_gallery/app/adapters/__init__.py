"""
Adapters package for the Gallery Service.

Contains the HTTP client for the upstream collection API. The adapter
encapsulates:

- Base URL and request shapes
- Per-endpoint pacing and timeouts
- Classification of failures into permanent and transient shared errors

Retries are applied by callers so each can choose its own attempt budget.
"""

from .museum_client import MuseumClient

__all__ = ["MuseumClient"]
