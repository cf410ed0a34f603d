import unittest

from chatbot_core.message import Message, Role


class MessageTests(unittest.TestCase):
    def test_append_fragment_concatenates_in_order(self) -> None:
        message = Message(role=Role.ASSISTANT, conversation_id="c1", message_id="1")
        for fragment in ["I", "'m", " fine"]:
            message.append_fragment(fragment)
        self.assertEqual("I'm fine", message.content)

    def test_empty_fragment_is_ignored(self) -> None:
        message = Message(role="assistant", conversation_id="c1", message_id="1", content="a")
        message.append_fragment("")
        self.assertEqual("a", message.content)

    def test_content_reads_between_appends(self) -> None:
        message = Message(role=Role.ASSISTANT, conversation_id="c1", message_id="1")
        message.append_fragment("ab")
        self.assertEqual("ab", message.content)
        message.append_fragment("cd")
        self.assertEqual("abcd", message.content)

    def test_identity_fields_are_read_only(self) -> None:
        message = Message(role=Role.USER, conversation_id="c1", message_id="0")
        with self.assertRaises(AttributeError):
            message.role = Role.ASSISTANT
        with self.assertRaises(AttributeError):
            message.created_at = "later"
        with self.assertRaises(AttributeError):
            message.content = "rewritten"

    def test_unknown_role_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Message(role="system", conversation_id="c1", message_id="0")

    def test_record_round_trip_keeps_fields(self) -> None:
        message = Message(
            role=Role.USER,
            conversation_id="c1",
            message_id="4",
            content="look",
            attachment_refs=["/tmp/a.png", "/tmp/b.png"],
        )
        record = message.to_record()
        self.assertEqual("user", record["role"])
        self.assertEqual(["/tmp/a.png", "/tmp/b.png"], record["attachmentRefs"])

        restored = Message.from_record(record)
        self.assertEqual(message.created_at, restored.created_at)
        self.assertEqual(("/tmp/a.png", "/tmp/b.png"), restored.attachment_refs)
        self.assertEqual({"role": "user", "content": "look"}, restored.to_chat_message())


if __name__ == "__main__":
    unittest.main()
