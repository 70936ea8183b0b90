import tempfile
import unittest
from pathlib import Path
from typing import Any, Dict, List, Tuple


class _Task:
    def __init__(self, fn, interval_s, name) -> None:
        self.fn = fn
        self.cancelled = False

    def start(self) -> None:
        pass

    def cancel(self) -> None:
        self.cancelled = True


class _Recorder:
    def __init__(self) -> None:
        from ccmail.daemon.session_adapter import WakeMode

        self.wake_mode = WakeMode.RESUME
        self.injected: List[Tuple[str, str]] = []
        self.woken: List[str] = []

    def inject_passive(self, context_id: str, text: str) -> None:
        self.injected.append((context_id, text))

    def wake(self, context_id: str) -> None:
        self.woken.append(context_id)


class TestMailOps(unittest.TestCase):
    def setUp(self) -> None:
        from ccmail.contracts.v1 import MailboxSettings
        from ccmail.daemon.service import MailboxService

        self._td = tempfile.TemporaryDirectory()
        self.home = Path(self._td.name)
        self.tasks: List[_Task] = []
        self.adapter = _Recorder()

        def _factory(fn, interval_s, name) -> _Task:
            task = _Task(fn, interval_s, name)
            self.tasks.append(task)
            return task

        self.service = MailboxService.from_home(
            self.home,
            settings=MailboxSettings(),
            adapter=self.adapter,  # type: ignore[arg-type]
            task_factory=_factory,
        )

    def tearDown(self) -> None:
        self.service.close()
        self._td.cleanup()

    def _call(self, op: str, args: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        from ccmail.contracts.v1 import DaemonRequest
        from ccmail.daemon.server import handle_request

        resp, should_exit = handle_request(
            DaemonRequest.model_validate({"op": op, "args": args}),
            service=self.service,
        )
        return resp.model_dump(), should_exit

    def _ok(self, op: str, args: Dict[str, Any]) -> Dict[str, Any]:
        resp, _ = self._call(op, args)
        self.assertTrue(resp.get("ok"), msg=str(resp))
        return resp.get("result") or {}

    def _error_code(self, op: str, args: Dict[str, Any]) -> str:
        resp, _ = self._call(op, args)
        self.assertFalse(resp.get("ok"))
        return str((resp.get("error") or {}).get("code") or "")

    def test_watch_send_tick_unwatch_scenario(self) -> None:
        self._ok("watch_unread_mail", {"name": "samus", "instructions": "summarize", "session_id": "A"})
        out = self._ok(
            "watch_unread_mail",
            {"name": "samus", "instructions": "ignored-since-first-writer-wins", "session_id": "B"},
        )
        self.assertEqual(out["status"]["ref_count"], 2)
        self.assertEqual(len(self.tasks), 1)

        self._ok("send_mail", {"to": "samus", "from": "link", "message": "hi"})
        self.service.registry.tick("samus")

        self.assertEqual([cid for cid, _ in self.adapter.injected], ["A", "B"])
        text = self.adapter.injected[0][1]
        self.assertIn("1 new message(s) for samus", text)
        self.assertIn("[Instructions: summarize]", text)
        self.assertEqual(self.adapter.injected[0][1], self.adapter.injected[1][1])
        self.assertEqual(self.adapter.woken, ["A", "B"])

        out = self._ok("stop_watching_mail", {"session_id": "A"})
        self.assertEqual(out["stopped"], ["samus"])
        self.assertEqual(self.service.status("samus").ref_count, 1)
        self.assertFalse(self.tasks[0].cancelled)

        self._ok("stop_watching_mail", {"session_id": "B"})
        self.assertTrue(self.tasks[0].cancelled)
        self.assertFalse(self.service.status("samus").watched)

        self._ok("send_mail", {"to": "samus", "from": "link", "message": "later"})
        self.assertIsNone(self.service.registry.tick("samus"))
        self.tasks[0].fn()
        self.assertEqual(len(self.adapter.injected), 2)
        self.assertEqual([m.body for m in self.service.store.unread_for("samus")], ["later"])

    def test_send_mail_confirmation_and_case_normalization(self) -> None:
        out = self._ok("send_mail", {"to": "Samus", "from": "Link", "message": "hi"})

        self.assertTrue(out["message"].startswith('Mail sent to "Samus" from "Link" at '))
        self.assertTrue(out["message"].endswith("Z"))
        self.assertGreater(out["id"], 0)
        unread = self.service.store.unread_for("samus")
        self.assertEqual([(m.recipient, m.sender) for m in unread], [("samus", "link")])

    def test_status_reports_same_entry_regardless_of_case(self) -> None:
        self._ok("watch_unread_mail", {"name": "samus", "instructions": "summarize", "session_id": "A"})

        upper = self._ok("watch_status", {"name": "SAMUS"})
        lower = self._ok("watch_status", {"name": "samus"})

        self.assertEqual(upper["status"], lower["status"])
        self.assertIn("1 session reference(s)", upper["message"])
        self.assertIn("1 unique session(s)", upper["message"])
        self.assertIn("with instructions: summarize", upper["message"])

    def test_status_of_unwatched_name(self) -> None:
        out = self._ok("watch_status", {"name": "ridley"})
        self.assertEqual(out["message"], 'No active watch found for "ridley"')
        self.assertFalse(out["status"]["watched"])

    def test_watch_confirmation_text(self) -> None:
        out = self._ok("watch_unread_mail", {"name": "samus", "instructions": "reply briefly", "session_id": "A"})
        self.assertEqual(
            out["message"],
            'Watch created for "samus". New messages will be auto-injected into this session '
            "with instructions: reply briefly",
        )

    def test_stop_watching_without_watches(self) -> None:
        out = self._ok("stop_watching_mail", {"session_id": "nobody"})
        self.assertEqual(out["stopped"], [])
        self.assertEqual(out["message"], "No active mail watches found for this session.")

    def test_invalid_input_is_reported_synchronously(self) -> None:
        self.assertEqual(self._error_code("send_mail", {"from": "link", "message": "hi"}), "missing_to")
        self.assertEqual(self._error_code("send_mail", {"to": "samus", "from": " ", "message": "hi"}), "missing_from")
        self.assertEqual(self._error_code("send_mail", {"to": "samus", "from": "link"}), "missing_message")
        self.assertEqual(
            self._error_code("watch_unread_mail", {"instructions": "x", "session_id": "A"}),
            "missing_name",
        )
        self.assertEqual(
            self._error_code("watch_unread_mail", {"name": "samus", "session_id": "A"}),
            "missing_instructions",
        )
        self.assertEqual(
            self._error_code("watch_unread_mail", {"name": "samus", "instructions": "x"}),
            "missing_session_id",
        )
        self.assertEqual(self._error_code("stop_watching_mail", {}), "missing_session_id")
        self.assertEqual(self._error_code("watch_status", {}), "missing_name")
        self.assertEqual(self._error_code("session_end", {}), "missing_session_id")
        self.assertEqual(self.service.registry.watched_recipients(), [])

    def test_session_end_releases_watches(self) -> None:
        self._ok("watch_unread_mail", {"name": "samus", "instructions": "x", "session_id": "A"})
        self._ok("watch_unread_mail", {"name": "link", "instructions": "x", "session_id": "A"})

        out = self._ok("session_end", {"session_id": "A"})

        self.assertEqual(out["stopped"], ["link", "samus"])
        self.assertEqual(self.service.registry.watched_recipients(), [])

    def test_unknown_op(self) -> None:
        self.assertEqual(self._error_code("does_not_exist", {}), "unknown_op")

    def test_ping_and_shutdown(self) -> None:
        self._ok("watch_unread_mail", {"name": "samus", "instructions": "x", "session_id": "A"})
        resp, should_exit = self._call("ping", {})
        self.assertTrue(resp["ok"])
        self.assertFalse(should_exit)
        self.assertEqual(resp["result"]["ipc_v"], 1)
        self.assertEqual(resp["result"]["watching"], ["samus"])

        resp, should_exit = self._call("shutdown", {})
        self.assertTrue(resp["ok"])
        self.assertTrue(should_exit)

    def test_store_unavailable_is_reported(self) -> None:
        from ccmail.kernel.store import StoreUnavailableError

        def _down(*_args, **_kwargs):
            raise StoreUnavailableError("disk gone")

        self.service.store.append = _down  # type: ignore[method-assign]
        self.assertEqual(
            self._error_code("send_mail", {"to": "samus", "from": "link", "message": "hi"}),
            "store_unavailable",
        )


if __name__ == "__main__":
    unittest.main()
