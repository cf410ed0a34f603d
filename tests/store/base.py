import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from chatbot_core.store import RecordStore


PROJECT_ROOT = Path(__file__).resolve().parents[2]


class RecordStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"{self.__class__.__name__.lower()}-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        self._store = RecordStore(str(self._tmp_dir / "chat.db"))

    def tearDown(self) -> None:
        self._store.close()
        shutil.rmtree(self._tmp_dir, ignore_errors=True)
