"""Event models shared across mirror components."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class EntryKind(str, Enum):
    """Kinds of filesystem objects found in the watched tree."""

    DIRECTORY = "directory"
    REGULAR = "regular file"
    UNEXPECTED = "unexpected"


class ChangeAction(str, Enum):
    """Types of changes emitted by the classifier."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """A single change observed in the source tree, bound for the replica."""

    action: ChangeAction
    kind: EntryKind
    path: Path
    replica_root: Path
    relative_path: Path

    @property
    def replica_path(self) -> Path:
        return self.replica_root / self.relative_path

    @property
    def name(self) -> str:
        return self.path.name


_KIND_LABELS = {
    EntryKind.DIRECTORY: "Directory",
    EntryKind.REGULAR: "Regular file",
    EntryKind.UNEXPECTED: "Unexpected file",
}


def describe_kind(kind: EntryKind) -> str:
    return _KIND_LABELS.get(kind, str(kind))
