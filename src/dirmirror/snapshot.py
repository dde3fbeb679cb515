"""In-memory record of the last observed state of a directory tree."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from .events import EntryKind


@dataclass
class Entry:
    """One filesystem object tracked by the mirror."""

    path: Path
    kind: EntryKind
    mtime: float


class SnapshotStore:
    """Entries keyed by path.

    Owned by a single worker; no locking is done here. Iteration follows
    insertion order, which carries no meaning beyond being stable.
    """

    def __init__(self) -> None:
        self._entries: Dict[Path, Entry] = {}

    def __iter__(self) -> Iterator[Entry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, path: Path) -> Optional[Entry]:
        return self._entries.get(path)

    def insert(self, entry: Entry) -> None:
        self._entries[entry.path] = entry

    def remove(self, entry: Union[Entry, Path]) -> None:
        self._entries.pop(_key(entry), None)

    def contains(self, entry: Union[Entry, Path]) -> bool:
        return _key(entry) in self._entries

    def paths(self) -> List[Path]:
        return list(self._entries)


def _key(entry: Union[Entry, Path]) -> Path:
    return entry.path if isinstance(entry, Entry) else entry
