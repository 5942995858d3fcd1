"""
Loader for the emoji -> discovery query table.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
import json
import threading

from shared.logging import get_logger


DEFAULT_DATA_FILE = Path(__file__).resolve().parent / "data" / "key_queries.json"


@dataclass(frozen=True)
class KeyEntry:
    """One supported key and the discovery queries it expands to."""

    key: str
    title: str
    queries: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "title": self.title, "queries": list(self.queries)}


class KeyTable:
    """
    Read-only table of supported keys.

    The data lives alongside the service in JSON form. A missing or
    malformed file yields an empty table so every request is answered with
    an invalid-key outcome instead of crashing the service.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self._path = Path(config_path) if config_path else DEFAULT_DATA_FILE
        self._lock = threading.Lock()
        self.logger = get_logger("gallery.key_table")
        self._entries = self._load()

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "KeyTable":
        """Build a table from an in-memory ``{"keys": {...}}`` document."""
        table = cls.__new__(cls)
        table._path = None
        table._lock = threading.Lock()
        table.logger = get_logger("gallery.key_table")
        table._entries = table._parse(mapping)
        return table

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def refresh(self) -> None:
        """Reload the table from disk."""
        if self._path is None:
            return
        with self._lock:
            self._entries = self._load()

    def get(self, key: str) -> Optional[KeyEntry]:
        return self._entries.get(key)

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def entries(self) -> List[KeyEntry]:
        return list(self._entries.values())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[KeyEntry]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self._entries)

    def _load(self) -> Dict[str, KeyEntry]:
        if not self._path.exists():
            self.logger.warning("Key table file not found; no keys available", path=str(self._path))
            return {}

        try:
            with self._path.open("r", encoding="utf-8") as handle:
                return self._parse(json.load(handle))
        except (ValueError, OSError) as exc:
            self.logger.error("Failed to parse key table", path=str(self._path), error=str(exc))
            return {}

    def _parse(self, payload: Any) -> Dict[str, KeyEntry]:
        if not isinstance(payload, dict):
            raise ValueError("key table must be a JSON object")

        entries: Dict[str, KeyEntry] = {}
        for key, definition in (payload.get("keys") or {}).items():
            if not isinstance(definition, dict):
                self.logger.warning("Skipping malformed key entry", key=key)
                continue
            queries = tuple(q for q in (_group_to_query(g) for g in definition.get("keyword_groups", [])) if q)
            if not queries:
                self.logger.warning("Skipping key without keyword groups", key=key)
                continue
            entries[key] = KeyEntry(key=key, title=definition.get("title") or key, queries=queries)
        return entries


def _group_to_query(group: Any) -> str:
    """Turn one keyword group into a single search query string."""
    if isinstance(group, str):
        return group.strip()
    if isinstance(group, (list, tuple)):
        return ",".join(str(word).strip() for word in group if str(word).strip())
    return ""
