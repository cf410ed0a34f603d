from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from loguru import logger

from chatbot_core.errors import InvalidArgument, SessionBusy
from chatbot_core.message import Message, Role, utc_now
from chatbot_core.notifier import ChangeCallback, ChangeNotifier
from chatbot_core.request_builder import RequestSpec, build_completion_request
from chatbot_core.store import ConversationSummary, RecordStore
from chatbot_core.stream_assembler import StreamAssembler
from chatbot_core.transport import CompletionTransport


class SessionStatus(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    ERROR = "error"


_BUSY_STATES = (SessionStatus.SENDING, SessionStatus.STREAMING)


@dataclass
class Session:
    selected_model: str
    active_conversation_id: str = ""
    messages: list[Message] = field(default_factory=list)
    pending_attachments: list[str] = field(default_factory=list)
    status: SessionStatus = SessionStatus.IDLE
    # Leading entries of ``messages`` that are known to be in the store.
    committed_count: int = 0


class SessionManager:
    """Owns the process-local chat session and drives one exchange at a time.

    All state changes are announced through ``subscribe`` callbacks, fired
    synchronously right after the mutation they describe.
    """

    def __init__(
        self,
        store: RecordStore,
        transport: CompletionTransport,
        *,
        model: str,
        base_url: str,
        api_key: str,
        extra_headers: Mapping[str, str] | None = None,
        notifier: ChangeNotifier | None = None,
    ):
        self._store = store
        self._transport = transport
        self._base_url = base_url
        self._api_key = api_key
        self._extra_headers = dict(extra_headers or {})
        self._notifier = notifier or ChangeNotifier()
        self._session = Session(selected_model=model)
        self._stream_task: asyncio.Task | None = None
        # Bumped whenever the session is reset; a send checks it before going further.
        self._generation = 0
        self.last_error: Exception | None = None

    # -- observation ----------------------------------------------------------

    def subscribe(self, callback: ChangeCallback) -> int:
        return self._notifier.subscribe(callback)

    def unsubscribe(self, token: int) -> None:
        self._notifier.unsubscribe(token)

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._session.messages)

    @property
    def active_conversation_id(self) -> str:
        return self._session.active_conversation_id

    @property
    def selected_model(self) -> str:
        return self._session.selected_model

    @property
    def pending_attachments(self) -> tuple[str, ...]:
        return tuple(self._session.pending_attachments)

    # -- conversation lifecycle -------------------------------------------------

    def start_conversation(self, resume_id: str | None = None) -> None:
        # Read first: a failed load must leave the current exchange untouched.
        loaded = self._store.list_messages(resume_id) if resume_id else []
        self._cancel_stream("conversation switch")
        session = self._session
        session.messages = loaded
        session.committed_count = len(loaded)
        session.active_conversation_id = resume_id or ""
        session.pending_attachments = []
        self.last_error = None
        self._set_status(SessionStatus.IDLE)
        if resume_id:
            self._notify("conversation.loaded", {"conversation_id": resume_id, "message_count": len(loaded)})
        else:
            self._notify("conversation.reset", {})

    def select_model(self, model_id: str) -> None:
        if not model_id or not model_id.strip():
            raise InvalidArgument("Model id must not be empty")
        self._cancel_stream("model switch")
        session = self._session
        previous = session.selected_model
        session.selected_model = model_id.strip()
        session.messages = []
        session.committed_count = 0
        session.active_conversation_id = ""
        self.last_error = None
        self._set_status(SessionStatus.IDLE)
        logger.info(f"Model switched: {previous} -> {session.selected_model}")
        self._notify("model.selected", {"model": session.selected_model, "previous": previous})

    def stage_attachments(self, refs: Iterable[str]) -> None:
        self._session.pending_attachments = [str(r) for r in refs if str(r)]
        self._notify("attachments.staged", {"count": len(self._session.pending_attachments)})

    def list_conversations(self, *, limit: int | None = None) -> list[ConversationSummary]:
        return self._store.list_conversations(limit=limit)

    def delete_conversation(self, conversation_id: str) -> None:
        is_active = bool(conversation_id) and conversation_id == self._session.active_conversation_id
        self._store.delete_conversation(conversation_id)
        logger.info(f"Deleted conversation {conversation_id}")
        if is_active:
            self._cancel_stream("conversation deleted")
            session = self._session
            session.messages = []
            session.committed_count = 0
            session.active_conversation_id = ""
            if session.status is not SessionStatus.IDLE:
                self._set_status(SessionStatus.IDLE)
        self._notify("conversation.deleted", {"conversation_id": conversation_id, "was_active": is_active})

    # -- sending ----------------------------------------------------------------

    async def send(self, text: str) -> None:
        """Send one user turn and stream the reply into ``messages``.

        Raises ``SessionBusy`` or ``InvalidArgument`` without touching state.
        Transport, stream and storage failures move the session to ``error``
        and are re-raised. A stream cancelled by a model or conversation
        switch returns quietly and persists nothing, as does a send whose
        session an observer resets before the request goes out.
        """
        session = self._session
        if session.status in _BUSY_STATES:
            raise SessionBusy(f"A send is already in flight (status={session.status.value})")
        text = text or ""
        if not text.strip() and not session.pending_attachments:
            raise InvalidArgument("Cannot send an empty message without attachments")

        if session.status is SessionStatus.ERROR:
            self._set_status(SessionStatus.IDLE)
        self._discard_uncommitted()

        conversation_id = session.active_conversation_id or str(uuid4())
        with logger.contextualize(conversation_id=conversation_id, model=session.selected_model):
            await self._send_turn(text, conversation_id)

    async def _send_turn(self, text: str, conversation_id: str) -> None:
        session = self._session
        generation = self._generation
        base_index = session.committed_count
        attachments = list(session.pending_attachments)
        session.pending_attachments = []

        request = build_completion_request(
            session.selected_model,
            session.messages,
            text,
            base_url=self._base_url,
            api_key=self._api_key,
            extra_headers=self._extra_headers,
        )

        user_message = Message(
            role=Role.USER,
            conversation_id=conversation_id,
            message_id=str(base_index),
            content=text,
            attachment_refs=attachments,
        )
        session.messages.append(user_message)
        self.last_error = None
        self._notify("message.appended", {"message_id": user_message.message_id, "role": Role.USER.value})
        if self._generation == generation:
            self._set_status(SessionStatus.SENDING)
        if self._generation != generation:
            logger.debug("Session reset by an observer before the request was issued")
            return

        task = asyncio.create_task(self._exchange(request, conversation_id, str(base_index + 1), generation))
        self._stream_task = task
        try:
            assistant_message = await task
        except asyncio.CancelledError:
            if self._stream_task is not task:
                # Abandoned by a switch or teardown; that path already reset state.
                return
            self._stream_task = None
            self._set_status(SessionStatus.IDLE)
            raise
        except Exception as ex:
            if self._stream_task is not task:
                logger.debug(f"Ignoring failure of abandoned exchange: {ex}")
                return
            self._stream_task = None
            self._fail(ex)
            raise
        if self._stream_task is not task:
            logger.debug("Exchange finished after being abandoned; not persisting")
            return
        self._stream_task = None

        session.committed_count = base_index + 2
        if not session.active_conversation_id:
            session.active_conversation_id = conversation_id
        try:
            self._persist_exchange(conversation_id, base_index, user_message, assistant_message)
        except Exception as ex:
            self._fail(ex)
            raise
        logger.debug(f"Persisted exchange at index {base_index}")
        self._set_status(SessionStatus.IDLE)

    async def _exchange(
        self,
        request: RequestSpec,
        conversation_id: str,
        assistant_id: str,
        generation: int,
    ) -> Message:
        async with self._transport.open_stream(request) as lines:
            assistant_message = Message(
                role=Role.ASSISTANT,
                conversation_id=conversation_id,
                message_id=assistant_id,
            )
            self._session.messages.append(assistant_message)
            self._notify("message.appended", {"message_id": assistant_id, "role": Role.ASSISTANT.value})
            if self._generation != generation:
                return assistant_message
            self._set_status(SessionStatus.STREAMING)

            assembler = StreamAssembler(assistant_message, self._on_fragment)
            await assembler.consume(lines)
        return assistant_message

    def _persist_exchange(
        self,
        conversation_id: str,
        base_index: int,
        user_message: Message,
        assistant_message: Message,
    ) -> None:
        self._store.put_message(conversation_id, base_index, user_message)
        self._store.put_message(conversation_id, base_index + 1, assistant_message)
        self._store.put_conversation_summary(
            ConversationSummary(
                conversation_id=conversation_id,
                last_prompt=user_message.content,
                last_response=assistant_message.content,
                attachment_refs=user_message.attachment_refs,
                updated_at=utc_now(),
            )
        )

    # -- teardown ---------------------------------------------------------------

    async def aclose(self) -> None:
        task = self._stream_task
        if self._cancel_stream("teardown") and task is not None:
            await asyncio.gather(task, return_exceptions=True)
            self._set_status(SessionStatus.IDLE)
        await self._transport.aclose()

    # -- internals --------------------------------------------------------------

    def _cancel_stream(self, reason: str) -> bool:
        self._generation += 1
        task = self._stream_task
        if task is None:
            return False
        self._stream_task = None
        if not task.done():
            task.cancel()
        logger.info(f"Abandoned in-flight exchange ({reason})")
        return True

    def _discard_uncommitted(self) -> None:
        session = self._session
        dropped = len(session.messages) - session.committed_count
        if dropped > 0:
            del session.messages[session.committed_count:]
            self._notify("messages.discarded", {"count": dropped})

    def _on_fragment(self, message: Message, fragment: str) -> None:
        self._notify("message.fragment", {"message_id": message.message_id, "fragment": fragment})

    def _fail(self, error: Exception) -> None:
        self.last_error = error
        logger.error(f"Exchange failed: {type(error).__name__}: {error}")
        self._set_status(SessionStatus.ERROR)

    def _set_status(self, status: SessionStatus) -> None:
        previous = self._session.status
        self._session.status = status
        if previous is not status:
            self._notify("status.changed", {"status": status.value, "previous": previous.value})

    def _notify(self, event_type: str, payload: dict) -> None:
        self._notifier.notify(event_type, payload)
