import asyncio

from chatbot_core.app_config import RuntimeEnv, parse_app_config
from chatbot_core.bootstrap import bootstrap_runtime
from chatbot_core.message import Message, Role
from chatbot_core.store import ConversationSummary, RecordStore
from tests.session.fakes import DONE, ScriptedTransport, data_line
from tests.store.base import RecordStoreTestCase


class BootstrapRuntimeTests(RecordStoreTestCase):
    def test_wires_session_against_configured_store(self) -> None:
        db_path = self._tmp_dir / "runtime" / "chat.db"
        app = parse_app_config({"DbPath": str(db_path), "Model": "m/1"})
        transport = ScriptedTransport([data_line("hi!"), DONE])
        runtime = bootstrap_runtime(app, RuntimeEnv(api_key="sk", default_model=None), transport=transport, configure_logging=False)

        async def scenario() -> None:
            await runtime.sessions.send("hello")
            await runtime.aclose()

        asyncio.run(scenario())

        self.assertTrue(transport.aclosed)
        self.assertEqual("Bearer sk", transport.requests[0].headers["Authorization"])
        reopened = RecordStore(str(db_path))
        try:
            self.assertEqual(1, len(reopened.list_conversations()))
        finally:
            reopened.close()

    def test_prunes_overflow_conversations(self) -> None:
        db_path = self._tmp_dir / "prune.db"
        seeded = RecordStore(str(db_path))
        for i, stamp in enumerate(["2026-01-01", "2026-02-01", "2026-03-01"]):
            cid = f"c{i}"
            seeded.put_message(cid, 0, Message(role=Role.USER, conversation_id=cid, message_id="0", content="x"))
            seeded.put_conversation_summary(ConversationSummary(cid, "x", "y", f"{stamp}T00:00:00.000+00:00"))
        seeded.close()

        app = parse_app_config({"DbPath": str(db_path), "MaxConversations": 1})
        runtime = bootstrap_runtime(app, RuntimeEnv(api_key="", default_model=None), transport=ScriptedTransport(), configure_logging=False)
        try:
            self.assertEqual(["c2"], [s.conversation_id for s in runtime.store.list_conversations()])
        finally:
            asyncio.run(runtime.aclose())
