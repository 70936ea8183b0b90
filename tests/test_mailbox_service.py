import json
import tempfile
import unittest
from pathlib import Path


class _Task:
    def __init__(self, fn, interval_s, name) -> None:
        self.fn = fn

    def start(self) -> None:
        pass

    def cancel(self) -> None:
        pass


class TestMailboxServiceResilience(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.home = Path(self._td.name)

    def tearDown(self) -> None:
        self._td.cleanup()

    def _service(self, **kwargs):
        from ccmail.daemon.service import MailboxService

        return MailboxService.from_home(self.home, task_factory=_Task, **kwargs)

    def test_deleting_database_between_sends_keeps_watches(self) -> None:
        svc = self._service()
        try:
            svc.watch("samus", "summarize", context_id="ctx-1")
            svc.send_mail("samus", "link", "first")
            db = self.home / "mailbox.db"
            for suffix in ("", "-wal", "-shm"):
                Path(str(db) + suffix).unlink(missing_ok=True)

            svc.send_mail("Samus", "Link", "second")

            self.assertTrue(svc.status("samus").watched)
            result = svc.registry.tick("samus")
            self.assertIsNotNone(result)
            self.assertEqual(len(result.message_ids), 1)
        finally:
            svc.close()

    def test_corrupting_database_between_sends_recovers(self) -> None:
        svc = self._service()
        try:
            svc.watch("samus", "summarize", context_id="ctx-1")
            svc.send_mail("samus", "link", "first")
            svc.store.reset()
            db = self.home / "mailbox.db"
            for suffix in ("-wal", "-shm"):
                Path(str(db) + suffix).unlink(missing_ok=True)
            db.write_bytes(b"\x00garbage" * 512)

            sent = svc.send_mail("samus", "link", "second")

            self.assertGreater(sent.id, 0)
            self.assertEqual(svc.status("samus").ref_count, 1)
            self.assertEqual([m.body for m in svc.store.unread_for("samus")], ["second"])
        finally:
            svc.close()

    def test_default_adapter_writes_session_jsonl(self) -> None:
        svc = self._service()
        try:
            svc.watch("samus", "summarize", context_id="ctx-1")
            svc.send_mail("samus", "link", "hello")
            svc.registry.tick("samus")
        finally:
            svc.close()

        from ccmail.daemon.session_adapter import session_file_name

        path = self.home / "sessions" / session_file_name("ctx-1")
        records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        self.assertEqual([r["kind"] for r in records], ["mail.inject", "mail.prompt"])
        self.assertIn("hello", records[0]["text"])
        self.assertFalse(records[0]["reply"])
        self.assertTrue(records[1]["reply"])

    def test_settings_choose_database_file_and_interval(self) -> None:
        (self.home / "settings.yaml").write_text(
            "db_filename: custom.db\npoll_interval_seconds: 2.5\n",
            encoding="utf-8",
        )
        intervals: list = []

        def _factory(fn, interval_s, name):
            intervals.append(interval_s)
            return _Task(fn, interval_s, name)

        from ccmail.daemon.service import MailboxService

        svc = MailboxService.from_home(self.home, task_factory=_factory)
        try:
            svc.send_mail("samus", "link", "hi")
            svc.watch("samus", "x", context_id="ctx-1")
        finally:
            svc.close()
        self.assertTrue((self.home / "custom.db").exists())
        self.assertEqual(intervals, [2.5])

    def test_send_mail_rejects_blank_fields(self) -> None:
        svc = self._service()
        try:
            with self.assertRaises(ValueError):
                svc.send_mail("", "link", "hi")
            with self.assertRaises(ValueError):
                svc.send_mail("samus", "  ", "hi")
            with self.assertRaises(ValueError):
                svc.send_mail("samus", "link", "   ")
        finally:
            svc.close()


if __name__ == "__main__":
    unittest.main()
