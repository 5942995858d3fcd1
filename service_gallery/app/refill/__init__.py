"""
Discovery and refill for the Gallery service.

Discovery runs once per key and produces a shuffled, de-duplicated list of
candidate object IDs. Refill walks that list behind a cursor, resolving IDs
into artworks and appending them to the key's ready queue.
"""

from .discovery import DiscoveryStep, NoCandidatesError
from .engine import RefillEngine, RefillReport

__all__ = ["DiscoveryStep", "NoCandidatesError", "RefillEngine", "RefillReport"]
