"""Polling loop that keeps the replica in step with the source tree."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .classifier import ChangeClassifier
from .config import MirrorConfig
from .events import ChangeEvent
from .reconciler import ApplyResult, DryRunReconciler, Reconciler, ReplicaReconciler

logger = logging.getLogger(__name__)

CycleOutcome = List[Tuple[ChangeEvent, ApplyResult]]


class WatcherAlreadyActive(RuntimeError):
    """Raised when a second mirror is constructed while another one is open."""


class MonitorState(str, Enum):
    """Phases of the polling worker."""

    IDLE = "idle"
    SCANNING = "scanning"
    RECONCILING = "reconciling"
    STOPPED = "stopped"


@dataclass
class MonitorStats:
    """Counters emitted by the mirror for observability."""

    cycles: int = 0
    events_emitted: int = 0
    failures: int = 0


class DirectoryMirror:
    """Polls the source tree and replays every change onto the replica.

    Only one instance may be open per process. The stop token is a
    ``threading.Event``; pass one in to share it with a signal handler.
    """

    _guard = threading.Lock()
    _active = False

    def __init__(
        self,
        config: MirrorConfig,
        reconciler: Optional[Reconciler] = None,
        *,
        stop_event: Optional[threading.Event] = None,
    ):
        with DirectoryMirror._guard:
            if DirectoryMirror._active:
                raise WatcherAlreadyActive("Only one DirectoryMirror can be active per process")
            DirectoryMirror._active = True
        self._claimed = True

        self._config = config
        if reconciler is None:
            reconciler = DryRunReconciler() if config.dry_run else ReplicaReconciler()
        self._reconciler = reconciler
        self._classifier = ChangeClassifier(
            config.source_root,
            config.replica_root,
            exclude_patterns=config.exclude_patterns,
        )
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._state = MonitorState.IDLE
        self._stats = MonitorStats()
        self._worker: Optional[threading.Thread] = None

        if not config.dry_run:
            try:
                config.replica_root.mkdir(parents=True, exist_ok=True)
            except OSError:
                self._release()
                raise

    def __enter__(self) -> "DirectoryMirror":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def stats(self) -> MonitorStats:
        return self._stats

    @property
    def classifier(self) -> ChangeClassifier:
        return self._classifier

    def start(self) -> None:
        """Run the polling loop on a background worker thread."""

        if self._worker is not None:
            raise RuntimeError("Mirror worker has already been started")
        self._worker = threading.Thread(target=self.run, name="dirmirror-worker", daemon=True)
        self._worker.start()

    def run(self) -> None:
        """Run the polling loop until the stop token is set."""

        logger.info(
            "Starting mirror %s -> %s every %ss",
            self._config.source_root,
            self._config.replica_root,
            self._config.interval,
        )
        try:
            while not self._stop_event.wait(self._config.interval):
                try:
                    self.run_once()
                except Exception:
                    logger.exception("Mirror cycle failed; retrying at the next poll")
                    self._state = MonitorState.IDLE
        except KeyboardInterrupt:
            logger.info("Mirror interrupted by user")
        finally:
            self._state = MonitorState.STOPPED
            logger.info(
                "Mirror stopped after %s cycles, %s events",
                self._stats.cycles,
                self._stats.events_emitted,
            )

    def run_once(self) -> CycleOutcome:
        """Scan the source once and apply every detected change to the replica."""

        outcomes: CycleOutcome = []
        self._state = MonitorState.SCANNING
        for event in self._classifier.classify():
            self._state = MonitorState.RECONCILING
            result = self._reconciler.apply(event)
            outcomes.append((event, result))
            if not result.ok:
                self._stats.failures += 1
            self._state = MonitorState.SCANNING

        self._stats.cycles += 1
        self._stats.events_emitted += len(outcomes)
        self._state = MonitorState.IDLE
        logger.debug("Cycle %s finished with %s events", self._stats.cycles, len(outcomes))
        return outcomes

    def stop(self) -> None:
        """Signal the worker to stop and wait until it has exited."""

        self._stop_event.set()
        if self._worker is None:
            self._state = MonitorState.STOPPED
            return
        if self._worker is not threading.current_thread():
            self._worker.join()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._worker is not None:
            self._worker.join(timeout)

    def is_alive(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def close(self) -> None:
        """Stop the worker and allow another mirror to be constructed."""

        self.stop()
        self._release()

    def _release(self) -> None:
        if not self._claimed:
            return
        with DirectoryMirror._guard:
            DirectoryMirror._active = False
        self._claimed = False
