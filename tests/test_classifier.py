from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from dirmirror.classifier import ChangeClassifier
from dirmirror.events import ChangeAction, EntryKind
from dirmirror.snapshot import Entry


def _bump_mtime(path: Path, seconds: float = 10.0) -> None:
    st = path.stat()
    os.utime(path, (st.st_atime + seconds, st.st_mtime + seconds))


def _summary(events):
    return [(event.action, event.kind, event.relative_path.as_posix()) for event in events]


class ChangeClassifierTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name).resolve()
        self.source = base / "source"
        self.replica = base / "replica"
        self.source.mkdir()
        self.replica.mkdir()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _classifier(self, **kwargs) -> ChangeClassifier:
        return ChangeClassifier(self.source, self.replica, **kwargs)

    def test_first_scan_reports_everything_as_created_in_walk_order(self) -> None:
        (self.source / "a.txt").write_text("a", encoding="utf-8")
        (self.source / "sub").mkdir()
        (self.source / "sub" / "b.txt").write_text("b", encoding="utf-8")
        classifier = self._classifier()

        events = list(classifier.classify())

        self.assertEqual(
            _summary(events),
            [
                (ChangeAction.CREATED, EntryKind.REGULAR, "a.txt"),
                (ChangeAction.CREATED, EntryKind.DIRECTORY, "sub"),
                (ChangeAction.CREATED, EntryKind.REGULAR, "sub/b.txt"),
            ],
        )
        self.assertEqual(events[0].replica_path, self.replica / "a.txt")
        self.assertEqual(len(classifier.snapshot), 3)
        self.assertEqual(len(classifier.shadow), 3)

    def test_unchanged_tree_produces_no_events(self) -> None:
        (self.source / "a.txt").write_text("a", encoding="utf-8")
        classifier = self._classifier()
        list(classifier.classify())

        self.assertEqual(list(classifier.classify()), [])

    def test_newer_timestamp_is_reported_as_modified(self) -> None:
        target = self.source / "a.txt"
        target.write_text("a", encoding="utf-8")
        classifier = self._classifier()
        list(classifier.classify())

        _bump_mtime(target)
        events = list(classifier.classify())

        self.assertEqual(_summary(events), [(ChangeAction.MODIFIED, EntryKind.REGULAR, "a.txt")])
        self.assertEqual(classifier.snapshot.lookup(target).mtime, target.stat().st_mtime)
        self.assertEqual(list(classifier.classify()), [])

    def test_older_timestamp_is_not_a_change(self) -> None:
        target = self.source / "a.txt"
        target.write_text("a", encoding="utf-8")
        classifier = self._classifier()
        list(classifier.classify())

        _bump_mtime(target, seconds=-100.0)

        self.assertEqual(list(classifier.classify()), [])

    def test_content_edit_without_timestamp_change_goes_unnoticed(self) -> None:
        target = self.source / "a.txt"
        target.write_text("first draft", encoding="utf-8")
        classifier = self._classifier()
        list(classifier.classify())

        st = target.stat()
        target.write_text("edited content", encoding="utf-8")
        os.utime(target, ns=(st.st_atime_ns, st.st_mtime_ns))

        self.assertEqual(list(classifier.classify()), [])

    def test_mirrored_entry_that_disappears_is_deleted(self) -> None:
        target = self.source / "a.txt"
        target.write_text("a", encoding="utf-8")
        classifier = self._classifier()
        list(classifier.classify())

        target.unlink()
        events = list(classifier.classify())

        self.assertEqual(_summary(events), [(ChangeAction.DELETED, EntryKind.REGULAR, "a.txt")])
        self.assertFalse(classifier.snapshot.contains(target))
        self.assertFalse(classifier.shadow.contains(target))
        self.assertEqual(list(classifier.classify()), [])

    def test_entry_is_kept_until_its_delete_has_been_consumed(self) -> None:
        target = self.source / "a.txt"
        target.write_text("a", encoding="utf-8")
        classifier = self._classifier()
        list(classifier.classify())
        target.unlink()

        events = classifier.classify()
        first = next(events)

        self.assertEqual(first.action, ChangeAction.DELETED)
        self.assertTrue(classifier.snapshot.contains(target))
        self.assertEqual(list(events), [])
        self.assertFalse(classifier.snapshot.contains(target))

    def test_entry_never_mirrored_produces_no_delete(self) -> None:
        classifier = self._classifier()
        ghost = self.source / "ghost.txt"
        classifier.snapshot.insert(Entry(path=ghost, kind=EntryKind.REGULAR, mtime=1.0))

        self.assertEqual(list(classifier.classify()), [])

    def test_kind_change_is_reported_as_delete_then_create(self) -> None:
        target = self.source / "thing"
        target.write_text("file first", encoding="utf-8")
        classifier = self._classifier()
        list(classifier.classify())

        target.unlink()
        target.mkdir()
        events = list(classifier.classify())

        self.assertEqual(
            _summary(events),
            [
                (ChangeAction.DELETED, EntryKind.REGULAR, "thing"),
                (ChangeAction.CREATED, EntryKind.DIRECTORY, "thing"),
            ],
        )
        self.assertEqual(classifier.snapshot.lookup(target).kind, EntryKind.DIRECTORY)

    @unittest.skipUnless(hasattr(os, "mkfifo"), "requires named pipes")
    def test_unexpected_file_type_is_warned_about_and_skipped(self) -> None:
        fifo = self.source / "pipe"
        os.mkfifo(fifo)
        classifier = self._classifier()

        with self.assertLogs("dirmirror.classifier", level="WARNING") as captured:
            events = list(classifier.classify())

        self.assertEqual(events, [])
        self.assertFalse(classifier.snapshot.contains(fifo))
        self.assertTrue(any("Unexpected file pipe" in line for line in captured.output))

    def test_exclude_patterns_skip_files_and_whole_directories(self) -> None:
        (self.source / "keep.txt").write_text("k", encoding="utf-8")
        (self.source / "scratch.tmp").write_text("t", encoding="utf-8")
        (self.source / "cache").mkdir()
        (self.source / "cache" / "blob.bin").write_bytes(b"\x00")
        classifier = self._classifier(exclude_patterns=["*.tmp", "cache"])

        events = list(classifier.classify())

        self.assertEqual(_summary(events), [(ChangeAction.CREATED, EntryKind.REGULAR, "keep.txt")])

    @unittest.skipUnless(hasattr(os, "symlink"), "requires symlinks")
    def test_symlink_loop_is_skipped_and_pending_delete_still_emitted(self) -> None:
        target = self.source / "a.txt"
        target.write_text("a", encoding="utf-8")
        classifier = self._classifier()
        list(classifier.classify())

        target.unlink()
        os.symlink("loop", self.source / "loop")
        with self.assertLogs("dirmirror.classifier", level="WARNING") as captured:
            events = list(classifier.classify())

        self.assertEqual(_summary(events), [(ChangeAction.DELETED, EntryKind.REGULAR, "a.txt")])
        self.assertFalse(classifier.snapshot.contains(target))
        self.assertFalse(classifier.snapshot.contains(self.source / "loop"))
        self.assertTrue(any("Cannot inspect" in line and "loop" in line for line in captured.output))

    def test_uninspectable_mirrored_entry_is_not_deleted(self) -> None:
        target = self.source / "a.txt"
        target.write_text("a", encoding="utf-8")
        classifier = self._classifier()
        list(classifier.classify())

        real_stat = os.stat

        def _stat(path, *args, **kwargs):
            if isinstance(path, (str, os.PathLike)) and os.fspath(path) == str(target):
                raise PermissionError(13, "Permission denied", str(target))
            return real_stat(path, *args, **kwargs)

        with mock.patch("os.stat", side_effect=_stat):
            with self.assertLogs("dirmirror.classifier", level="WARNING") as captured:
                events = list(classifier.classify())

        self.assertEqual(events, [])
        self.assertTrue(classifier.snapshot.contains(target))
        self.assertTrue(any("Cannot inspect" in line for line in captured.output))

    def test_unreadable_directory_is_reported_and_children_kept(self) -> None:
        locked = self.source / "locked"
        locked.mkdir()
        (locked / "inner.txt").write_text("i", encoding="utf-8")
        classifier = self._classifier()
        list(classifier.classify())

        real_scandir = os.scandir

        def _scandir(path=".", *args, **kwargs):
            if isinstance(path, (str, os.PathLike)) and os.fspath(path) == str(locked):
                raise PermissionError(13, "Permission denied", str(locked))
            return real_scandir(path, *args, **kwargs)

        with mock.patch("os.scandir", side_effect=_scandir):
            with self.assertLogs("dirmirror.classifier", level="WARNING") as captured:
                events = list(classifier.classify())

        self.assertEqual(events, [])
        self.assertTrue(classifier.snapshot.contains(locked / "inner.txt"))
        self.assertTrue(any("Cannot scan" in line and "locked" in line for line in captured.output))

    def test_missing_source_root_is_skipped_without_deletes(self) -> None:
        (self.source / "a.txt").write_text("a", encoding="utf-8")
        classifier = self._classifier()
        list(classifier.classify())

        (self.source / "a.txt").unlink()
        self.source.rmdir()
        with self.assertLogs("dirmirror.classifier", level="WARNING"):
            events = list(classifier.classify())

        self.assertEqual(events, [])
        self.assertEqual(len(classifier.snapshot), 1)


if __name__ == "__main__":
    unittest.main()
