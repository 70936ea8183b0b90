import io
import json
import logging
import unittest


class TestJsonLineFormatter(unittest.TestCase):
    def test_record_is_one_json_object(self) -> None:
        from ccmail.util.obslog import JsonLineFormatter

        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonLineFormatter("daemon"))
        log = logging.getLogger("ccmail.test.obslog")
        log.addHandler(handler)
        log.propagate = False
        try:
            log.warning("watch started for %s", "samus", extra={"op": "watch_unread_mail"})
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                log.exception("tick failed")
        finally:
            log.removeHandler(handler)
            log.propagate = True

        lines = [json.loads(line) for line in stream.getvalue().splitlines() if line.startswith("{")]
        self.assertEqual(lines[0]["msg"], "watch started for samus")
        self.assertEqual(lines[0]["level"], "WARNING")
        self.assertEqual(lines[0]["component"], "daemon")
        self.assertEqual(lines[0]["op"], "watch_unread_mail")
        self.assertTrue(lines[0]["ts"].endswith("Z"))
        self.assertIn("RuntimeError: boom", lines[1]["exc"])

    def test_setup_is_idempotent_unless_forced(self) -> None:
        from ccmail.util.obslog import setup_root_json_logging

        root = logging.getLogger()
        before_handlers = list(root.handlers)
        before_level = root.level
        try:
            setup_root_json_logging(component="daemon", level="debug")
            setup_root_json_logging(component="daemon", level="error")
            ours = [h for h in root.handlers if h not in before_handlers]
            self.assertEqual(len(ours), 1)
            self.assertEqual(root.level, logging.DEBUG)

            setup_root_json_logging(component="daemon", level="error", force=True)
            ours = [h for h in root.handlers if h not in before_handlers]
            self.assertEqual(len(ours), 1)
            self.assertEqual(root.level, logging.ERROR)
        finally:
            for h in list(root.handlers):
                if h not in before_handlers:
                    root.removeHandler(h)
            root.setLevel(before_level)


if __name__ == "__main__":
    unittest.main()
