import json
import tempfile
import unittest
from pathlib import Path

from chat_client.models import PresenceEntry, StatusRecord
from chat_client.presence import PresenceTracker, StatusHistory


class PresenceTrackerTests(unittest.TestCase):
    def test_replace_is_wholesale_and_unique_per_username(self):
        tracker = PresenceTracker()
        tracker.apply_status("old", "receiver", "online", 1)

        tracker.replace(
            [
                PresenceEntry("receiver", "receiver", 10),
                PresenceEntry("admin", "admin", 11),
                PresenceEntry("receiver", "receiver", 12),
            ]
        )

        snapshot = tracker.snapshot()
        self.assertEqual(len(snapshot), 2)
        self.assertNotIn("old", tracker)
        by_name = {entry.username: entry for entry in snapshot}
        self.assertEqual(by_name["receiver"].connected_at, 12)

    def test_online_replaces_existing_entry(self):
        tracker = PresenceTracker()
        tracker.apply_status("admin", "admin", "online", 1)
        tracker.apply_status("admin", "admin", "online", 2)

        self.assertEqual(tracker.snapshot(), (PresenceEntry("admin", "admin", 2),))

    def test_offline_removes_and_unknown_status_is_ignored(self):
        tracker = PresenceTracker()
        tracker.apply_status("admin", "admin", "online", 1)

        self.assertFalse(tracker.apply_status("admin", "admin", "away", 2))
        self.assertIn("admin", tracker)
        self.assertTrue(tracker.apply_status("admin", "admin", "offline", 3))
        self.assertFalse(tracker.apply_status("admin", "admin", "offline", 4))
        self.assertEqual(len(tracker), 0)


class StatusHistoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.path = Path(self.tmpdir.name) / "status_history.json"

    def test_ring_evicts_oldest_beyond_capacity(self):
        history = StatusHistory(self.path)
        for i in range(60):
            history.record(StatusRecord(f"user{i}", "receiver", "online", i))

        snapshot = history.snapshot()
        self.assertEqual(len(snapshot), 50)
        self.assertEqual(snapshot[0].username, "user10")
        self.assertEqual(snapshot[-1].username, "user59")

    def test_history_survives_restart(self):
        history = StatusHistory(self.path)
        history.record(StatusRecord("admin", "admin", "online", 1))
        history.record(StatusRecord("admin", "admin", "offline", 2))

        reloaded = StatusHistory(self.path)
        self.assertEqual(reloaded.snapshot(), history.snapshot())
        stored = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(stored[1], {"username": "admin", "role": "admin", "status": "offline", "timestamp": 2})

    def test_corrupt_file_starts_empty(self):
        self.path.write_text("[{", encoding="utf-8")
        self.assertEqual(len(StatusHistory(self.path)), 0)

        self.path.write_text(json.dumps([{"username": 3}, "junk", {"username": "ok", "status": "online"}]))
        self.assertEqual([r.username for r in StatusHistory(self.path).snapshot()], ["ok"])

    def test_in_memory_history_without_path(self):
        history = StatusHistory(limit=2)
        for i in range(3):
            history.record(StatusRecord(str(i), "receiver", "online", i))

        self.assertEqual([r.username for r in history.snapshot()], ["1", "2"])


if __name__ == "__main__":
    unittest.main()
