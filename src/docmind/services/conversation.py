"""Conversation state machine, kept separate from any rendering."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, Literal, Sequence
from uuid import uuid4

from docmind.metrics.observability import get_logger
from docmind.models import Document, Message, utcnow
from docmind.services.generation import GenerationError
from docmind.services.query import QueryService, ReplyStream

SERVICE_UNAVAILABLE_NOTICE = "Retrieval/generation service unavailable. The indexing service might be overloaded."
CANCELLED_NOTICE = "Reply cancelled."
WELCOME_TEXT = (
    "DocMind workspace online. Upload your documents and ask questions about them; "
    "answers cite the files they draw from."
)

WorkspaceAction = Literal["summarize", "insights", "conflicts"]

WORKSPACE_ACTIONS: dict[str, str] = {
    "summarize": "Synthesize all indexed data and provide a unified technical summary.",
    "insights": "Run a semantic analysis to discover correlations across the current document index.",
    "conflicts": "Audit all documents for potential logical inconsistencies or contradictory data points.",
}


class ConversationStateError(RuntimeError):
    """Raised when a transition is not valid in the current state."""


class ConversationBusyError(ConversationStateError):
    """Raised when a message is submitted while a reply is still streaming."""


@dataclass
class PendingReply:
    """Assistant placeholder that fragments are appended to."""

    message_id: str
    user_message: Message
    fragments: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.fragments)


class Conversation:
    """Chronological message list with one reply in flight at most.

    States: idle -> pending (after ``begin``) -> idle (after ``complete`` or
    ``fail``). Rendering reads ``messages``; the provider reads ``history()``.
    """

    def __init__(
        self,
        conversation_id: str | None = None,
        *,
        title: str = "New chat",
        document_ids: Sequence[str] = (),
        welcome: bool = False,
    ) -> None:
        self.conversation_id = conversation_id or uuid4().hex
        self.title = title
        self.document_ids: tuple[str, ...] = tuple(document_ids)
        self.notice: str | None = None
        self._messages: list[Message] = []
        self._pending: PendingReply | None = None
        if welcome:
            self._messages.append(Message(message_id="welcome", role="assistant", text=WELCOME_TEXT))

    @property
    def is_pending(self) -> bool:
        return self._pending is not None

    @property
    def pending(self) -> PendingReply | None:
        return self._pending

    @property
    def messages(self) -> tuple[Message, ...]:
        """Finished messages plus the in-progress placeholder, if any."""

        if self._pending is None:
            return tuple(self._messages)
        placeholder = Message(message_id=self._pending.message_id, role="assistant", text=self._pending.text)
        return (*self._messages, placeholder)

    def history(self) -> tuple[Message, ...]:
        # The user message of a pending reply is excluded: the pipeline appends it as the final turn.
        if self._pending is None:
            return tuple(self._messages)
        return tuple(m for m in self._messages if m.message_id != self._pending.user_message.message_id)

    def begin(self, text: str) -> PendingReply:
        if self._pending is not None:
            raise ConversationBusyError("A reply is already being generated for this conversation")
        if not text or not text.strip():
            raise ValueError("Message text must not be empty")
        user_message = Message(message_id=uuid4().hex, role="user", text=text, created_at=utcnow())
        self._messages.append(user_message)
        if self.title == "New chat":
            self.title = text.strip()[:60]
        self.notice = None
        self._pending = PendingReply(message_id=uuid4().hex, user_message=user_message)
        return self._pending

    def append(self, fragment: str) -> None:
        self._require_pending().fragments.append(fragment)

    def complete(self, sources: Iterable[str] = ()) -> Message:
        pending = self._require_pending()
        message = Message(
            message_id=pending.message_id,
            role="assistant",
            text=pending.text,
            created_at=utcnow(),
            sources=tuple(sources),
        )
        self._messages.append(message)
        self._pending = None
        return message

    def fail(self, notice: str = SERVICE_UNAVAILABLE_NOTICE, *, keep_partial: bool = True) -> Message | None:
        """End the pending reply after a provider failure.

        Text already streamed is kept as the assistant message unless
        ``keep_partial`` is false; an empty placeholder is always dropped.
        """

        pending = self._require_pending()
        kept: Message | None = None
        if keep_partial and pending.text:
            kept = Message(message_id=pending.message_id, role="assistant", text=pending.text, created_at=utcnow())
            self._messages.append(kept)
        self._pending = None
        self.notice = notice
        return kept

    def attach_documents(self, documents: Iterable[Document]) -> None:
        self.document_ids = tuple(document.document_id for document in documents)

    def _require_pending(self) -> PendingReply:
        if self._pending is None:
            raise ConversationStateError("No reply is pending")
        return self._pending


class ConversationRunner:
    """Drives a ``Conversation`` through one query using a ``QueryService``."""

    def __init__(self, service: QueryService) -> None:
        self._service = service
        self._logger = get_logger("conversation")

    async def run(self, conversation: Conversation, query: str, documents: Iterable[Document]) -> Message | None:
        documents = list(documents)
        pending = conversation.begin(query)
        stream: ReplyStream | None = None
        try:
            conversation.attach_documents(documents)
            stream = self._service.stream_reply(query, conversation.history(), documents)
            async for fragment in stream:
                conversation.append(fragment)
        except GenerationError as exc:
            self._logger.warning(
                "conversation.reply_failed",
                conversation_id=conversation.conversation_id,
                message_id=pending.message_id,
                detail=str(exc),
            )
            return conversation.fail()
        except asyncio.CancelledError:
            conversation.fail(CANCELLED_NOTICE)
            raise
        except Exception:
            conversation.fail()
            raise
        finally:
            if stream is not None:
                await stream.aclose()
        return conversation.complete(stream.sources)
