"""Snapshot diffing for the polling mirror."""
from __future__ import annotations

import logging
import os
import stat
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

from .events import ChangeAction, ChangeEvent, EntryKind
from .snapshot import Entry, SnapshotStore

logger = logging.getLogger(__name__)


class ChangeClassifier:
    """Compares a fresh walk of the source tree against the remembered snapshot.

    ``snapshot`` holds every entry seen during the last completed poll;
    ``shadow`` holds the entries that were handed to the replica side, and
    only those can produce a delete once they disappear from the source.
    """

    def __init__(self, source_root: Path, replica_root: Path, *, exclude_patterns: Sequence[str] = ()):
        self._source_root = Path(source_root)
        self._replica_root = Path(replica_root)
        self._exclude_patterns = list(exclude_patterns)
        self.snapshot = SnapshotStore()
        self.shadow = SnapshotStore()

    @property
    def source_root(self) -> Path:
        return self._source_root

    def classify(self) -> Iterator[ChangeEvent]:
        """Yield the changes since the previous call.

        Creates and modifies come out in walk order, deletes in snapshot
        order. Deleted entries are dropped from the snapshot only once the
        caller has consumed every delete event.
        """

        root = self._source_root
        if not root.is_dir():
            logger.warning("Source path %s does not exist; skipping scan", root)
            return

        for path in _iter_paths(root, self._exclude_patterns):
            try:
                st = path.stat()
            except FileNotFoundError:
                logger.debug("%s vanished before it could be inspected", path)
                continue
            except OSError as exc:
                logger.warning("Cannot inspect %s: %s", path, exc)
                continue

            kind = _kind_from_mode(st.st_mode)
            if kind is EntryKind.UNEXPECTED:
                logger.warning("Unexpected file %s has been detected | %s", path.name, path)
                continue

            known = self.snapshot.lookup(path)
            if known is None:
                self._track(Entry(path=path, kind=kind, mtime=st.st_mtime))
                yield self._event(ChangeAction.CREATED, kind, path)
            elif known.kind is not kind:
                logger.debug("%s changed from %s to %s", path, known.kind.value, kind.value)
                yield self._event(ChangeAction.DELETED, known.kind, path)
                self._track(Entry(path=path, kind=kind, mtime=st.st_mtime))
                yield self._event(ChangeAction.CREATED, kind, path)
            elif st.st_mtime > known.mtime:
                known.mtime = st.st_mtime
                yield self._event(ChangeAction.MODIFIED, kind, path)

        garbage: List[Entry] = []
        for entry in self.snapshot:
            if self.shadow.contains(entry) and not _still_exists(entry.path):
                yield self._event(ChangeAction.DELETED, entry.kind, entry.path)
                garbage.append(entry)

        for entry in garbage:
            self.snapshot.remove(entry)
            self.shadow.remove(entry)

    def _track(self, entry: Entry) -> None:
        self.snapshot.insert(entry)
        self.shadow.insert(entry)

    def _event(self, action: ChangeAction, kind: EntryKind, path: Path) -> ChangeEvent:
        return ChangeEvent(
            action=action,
            kind=kind,
            path=path,
            replica_root=self._replica_root,
            relative_path=path.relative_to(self._source_root),
        )


def _kind_from_mode(mode: int) -> EntryKind:
    if stat.S_ISDIR(mode):
        return EntryKind.DIRECTORY
    if stat.S_ISREG(mode):
        return EntryKind.REGULAR
    return EntryKind.UNEXPECTED


def _iter_paths(root: Path, exclude_patterns: List[str]) -> Iterable[Path]:
    # Top-down, sorted per directory: a directory is always yielded before its children.
    for dirpath, dirnames, filenames in os.walk(root, onerror=_report_walk_error):
        current = Path(dirpath)
        dirnames[:] = sorted(
            name for name in dirnames if not _is_excluded(current / name, root, exclude_patterns)
        )
        files = [name for name in filenames if not _is_excluded(current / name, root, exclude_patterns)]
        for name in sorted(dirnames + files):
            yield current / name


def _report_walk_error(exc: OSError) -> None:
    logger.warning("Cannot scan %s: %s", exc.filename, exc)


def _still_exists(path: Path) -> bool:
    # Only a definite absence counts as deleted.
    try:
        os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return False
    except OSError as exc:
        logger.warning("Cannot inspect %s: %s; keeping it in Replica", path, exc)
    return True


def _is_excluded(path: Path, root: Path, exclude_patterns: List[str]) -> bool:
    if not exclude_patterns:
        return False

    relative = path.name
    rel_from_root = path.relative_to(root).as_posix()
    return any(fnmatch(relative, pat) or fnmatch(rel_from_root, pat) for pat in exclude_patterns)
