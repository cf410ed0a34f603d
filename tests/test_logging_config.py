import json
import shutil
import sys
import unittest
from uuid import uuid4

from loguru import logger

from chatbot_core.logging_config import setup_logging
from tests.store.base import PROJECT_ROOT


class SetupLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"logging-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)

    def tearDown(self) -> None:
        logger.remove()
        logger.configure(extra={})
        logger.add(sys.stderr)
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def _read_file_log(self, path) -> list[str]:
        # Removing the sinks closes the file so everything is flushed.
        logger.remove()
        return path.read_text(encoding="utf-8").splitlines()

    def test_file_lines_carry_exchange_tags(self) -> None:
        path = self._tmp_dir / "chat.log"
        setup_logging("DEBUG", [{"type": "file", "path": str(path)}])

        with logger.contextualize(conversation_id="conv-1", model="vendor/model"):
            logger.info("inside exchange")
        logger.info("outside exchange")

        lines = self._read_file_log(path)
        self.assertIn("model=vendor/model conversation=conv-1", lines[0])
        self.assertTrue(lines[0].endswith("inside exchange"))
        self.assertIn("model=- conversation=-", lines[1])

    def test_serialized_file_keeps_tags_in_extra(self) -> None:
        path = self._tmp_dir / "chat.jsonl"
        descriptions = setup_logging("INFO", [{"type": "file", "path": str(path), "serialize": True}])

        with logger.contextualize(conversation_id="conv-2", model="m/2"):
            logger.warning("tagged")

        record = json.loads(self._read_file_log(path)[0])["record"]
        self.assertEqual({"conversation_id": "conv-2", "model": "m/2"}, record["extra"])
        self.assertEqual([f"file ({path}, INFO, json)"], descriptions)

    def test_unknown_consumer_is_skipped(self) -> None:
        descriptions = setup_logging("INFO", [{"type": "carrier-pigeon"}, {"type": "console", "level": "ERROR"}])
        self.assertEqual(["console (stderr, ERROR)"], descriptions)

    def test_consumer_level_overrides_default(self) -> None:
        path = self._tmp_dir / "warn.log"
        setup_logging("DEBUG", [{"type": "file", "path": str(path), "level": "WARNING"}])

        logger.info("dropped")
        logger.warning("kept")

        lines = self._read_file_log(path)
        self.assertEqual(1, len(lines))
        self.assertTrue(lines[0].endswith("kept"))


if __name__ == "__main__":
    unittest.main()
