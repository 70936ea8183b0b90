import json
import tempfile
import unittest
from pathlib import Path


class TestSessionAdapterFactory(unittest.TestCase):
    def test_resume_is_preferred_when_available(self) -> None:
        from ccmail.daemon.session_adapter import ResumeCapableAdapter, make_session_adapter

        calls: list = []
        adapter = make_session_adapter(
            lambda cid, text: calls.append(("inject", cid, text)),
            resume=lambda cid: calls.append(("resume", cid)),
            prompt=lambda cid, text: calls.append(("prompt", cid, text)),
        )
        self.assertIsInstance(adapter, ResumeCapableAdapter)
        adapter.inject_passive("s1", "hello")
        adapter.wake("s1")
        self.assertEqual(calls, [("inject", "s1", "hello"), ("resume", "s1")])

    def test_prompt_only_wakes_with_active_prompt(self) -> None:
        from ccmail.daemon.session_adapter import WAKE_PROMPT_TEXT, PromptOnlyAdapter, make_session_adapter

        calls: list = []
        adapter = make_session_adapter(
            lambda cid, text: calls.append(("inject", cid, text)),
            prompt=lambda cid, text: calls.append(("prompt", cid, text)),
        )
        self.assertIsInstance(adapter, PromptOnlyAdapter)
        adapter.wake("s1")
        self.assertEqual(calls, [("prompt", "s1", WAKE_PROMPT_TEXT)])

    def test_factory_requires_a_wake_primitive(self) -> None:
        from ccmail.daemon.session_adapter import make_session_adapter

        with self.assertRaises(ValueError):
            make_session_adapter(lambda cid, text: None)


class TestJsonlSessionAdapter(unittest.TestCase):
    def test_records_are_appended_per_session(self) -> None:
        from ccmail.daemon.session_adapter import JsonlSessionAdapter, WakeMode

        with tempfile.TemporaryDirectory() as td:
            adapter = JsonlSessionAdapter(Path(td) / "sessions")
            self.assertEqual(adapter.wake_mode, WakeMode.PROMPT)
            adapter.inject_passive("s1", "batch text")
            adapter.wake("s1")
            adapter.inject_passive("s2", "other")

            lines = adapter.path_for("s1").read_text(encoding="utf-8").splitlines()
            other = adapter.path_for("s2").read_text(encoding="utf-8").splitlines()

        records = [json.loads(line) for line in lines]
        self.assertEqual([r["kind"] for r in records], ["mail.inject", "mail.prompt"])
        self.assertEqual(records[0]["text"], "batch text")
        self.assertEqual(records[0]["context_id"], "s1")
        self.assertFalse(records[0]["reply"])
        self.assertTrue(records[1]["reply"])
        self.assertTrue(records[0]["ts"].endswith("Z"))
        self.assertEqual(len(other), 1)

    def test_session_file_names_are_sanitized(self) -> None:
        from ccmail.daemon.session_adapter import session_file_name

        self.assertTrue(session_file_name("abc-123").startswith("abc-123-"))
        traversal = session_file_name("../../etc/passwd")
        self.assertTrue(traversal.startswith(".._.._etc_passwd-"))
        self.assertNotIn("/", traversal)
        self.assertLessEqual(len(session_file_name("x" * 500)), 96 + 1 + 16 + len(".jsonl"))
        self.assertEqual(session_file_name("abc-123"), session_file_name("  abc-123 "))
        with self.assertRaises(ValueError):
            session_file_name("   ")

    def test_distinct_contexts_never_share_a_file(self) -> None:
        from ccmail.daemon.session_adapter import JsonlSessionAdapter

        ids = ["team/alpha", "team_alpha", "x" * 128 + "A", "x" * 128 + "B"]
        with tempfile.TemporaryDirectory() as td:
            adapter = JsonlSessionAdapter(Path(td) / "sessions")
            for cid in ids:
                adapter.inject_passive(cid, f"for {cid}")

            self.assertEqual(len({adapter.path_for(cid) for cid in ids}), len(ids))
            files = sorted((Path(td) / "sessions").iterdir())
            self.assertEqual(len(files), len(ids))
            for cid in ids:
                lines = adapter.path_for(cid).read_text(encoding="utf-8").splitlines()
                self.assertEqual([json.loads(line)["context_id"] for line in lines], [cid])


if __name__ == "__main__":
    unittest.main()
