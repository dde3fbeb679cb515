"""Replaying change events onto the replica tree."""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from .events import ChangeAction, ChangeEvent, EntryKind, describe_kind

logger = logging.getLogger(__name__)

_COPY_ACTIONS = (ChangeAction.CREATED, ChangeAction.MODIFIED)
_KNOWN_KINDS = (EntryKind.DIRECTORY, EntryKind.REGULAR)


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of applying one event to the replica."""

    ok: bool
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "ApplyResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "ApplyResult":
        return cls(ok=False, reason=reason)


class Reconciler(Protocol):
    """Anything that can bring the replica in line with a single event."""

    def apply(self, event: ChangeEvent) -> ApplyResult:
        ...


class ReplicaReconciler:
    """Copies, overwrites and removes replica objects for each event.

    Filesystem errors are logged and reported through the result; they are
    never raised, so one bad entry cannot stop the rest of the cycle.
    """

    def apply(self, event: ChangeEvent) -> ApplyResult:
        unexpected = _check_supported(event)
        if unexpected is not None:
            return unexpected

        target = event.replica_path
        try:
            if event.action in _COPY_ACTIONS:
                _copy(event.path, target, event.kind)
            else:
                _remove(target, event.kind)
        except OSError as exc:
            logger.error(
                "Failed to apply %s %s to Replica: %s | %s",
                event.action.value,
                event.name,
                exc,
                event.path,
            )
            return ApplyResult.failure(str(exc))

        logger.info(
            "%s %s has been %s Replica | %s",
            describe_kind(event.kind),
            event.name,
            _outcome(event.action),
            event.path,
        )
        return ApplyResult.success()


class DryRunReconciler:
    """Logs what would happen to the replica without touching it."""

    def apply(self, event: ChangeEvent) -> ApplyResult:
        unexpected = _check_supported(event)
        if unexpected is not None:
            return unexpected

        logger.info(
            "%s %s would be %s Replica | %s",
            describe_kind(event.kind),
            event.name,
            _outcome(event.action),
            event.path,
        )
        return ApplyResult.success()


def _check_supported(event: ChangeEvent) -> Optional[ApplyResult]:
    action_known = isinstance(event.action, ChangeAction)
    kind_known = event.kind in _KNOWN_KINDS

    if not action_known and not kind_known:
        logger.warning("Unexpected action has been detected for unexpected file type: %s", event.path)
        return ApplyResult.failure("unexpected action and file type")
    if not action_known:
        logger.warning(
            "Unexpected action has been detected for %s %s", describe_kind(event.kind), event.path
        )
        return ApplyResult.failure(f"unexpected action {event.action!r}")
    if not kind_known:
        logger.warning("Unexpected file %s has been %s", event.path, event.action.value)
        return ApplyResult.failure(f"unexpected file type {event.kind!r}")
    return None


def _outcome(action: ChangeAction) -> str:
    if action is ChangeAction.DELETED:
        return "deleted from"
    return f"{action.value} in"


def _copy(source: Path, target: Path, kind: EntryKind) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if kind is EntryKind.DIRECTORY:
        shutil.copytree(source, target, dirs_exist_ok=True)
    else:
        shutil.copy2(source, target)


def _remove(target: Path, kind: EntryKind) -> None:
    # A parent removed earlier in the same cycle takes its children with it.
    if not (target.exists() or target.is_symlink()):
        logger.debug("%s is already absent from Replica", target)
        return
    if kind is EntryKind.DIRECTORY:
        shutil.rmtree(target)
    else:
        target.unlink()
