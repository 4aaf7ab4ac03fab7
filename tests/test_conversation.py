from __future__ import annotations

import asyncio

import pytest
from conftest import ScriptedGenerator

from docmind.documents import DocumentStore
from docmind.services.conversation import (
    CANCELLED_NOTICE,
    SERVICE_UNAVAILABLE_NOTICE,
    Conversation,
    ConversationBusyError,
    ConversationRunner,
    ConversationStateError,
)
from docmind.services.generation import GenerationError
from docmind.services.query import QueryService


def test_begin_append_complete_builds_chronological_messages():
    conversation = Conversation()
    pending = conversation.begin("What changed in revenue?")
    conversation.append("Revenue ")
    conversation.append("grew.")

    rendered = conversation.messages
    assert [m.role for m in rendered] == ["user", "assistant"]
    assert rendered[-1].message_id == pending.message_id
    assert rendered[-1].text == "Revenue grew."

    final = conversation.complete(["A.txt"])
    assert final.text == "Revenue grew."
    assert final.sources == ("A.txt",)
    assert not conversation.is_pending
    assert len({m.message_id for m in conversation.messages}) == 2
    assert conversation.title == "What changed in revenue?"


def test_second_submission_while_pending_is_rejected():
    conversation = Conversation()
    conversation.begin("first")
    with pytest.raises(ConversationBusyError):
        conversation.begin("second")


def test_transitions_require_a_pending_reply():
    conversation = Conversation()
    with pytest.raises(ConversationStateError):
        conversation.append("x")
    with pytest.raises(ConversationStateError):
        conversation.complete()


def test_blank_messages_are_rejected():
    with pytest.raises(ValueError):
        Conversation().begin("   ")


def test_history_excludes_the_pending_exchange():
    conversation = Conversation(welcome=True)
    conversation.begin("hello")
    conversation.append("partial")
    assert [m.message_id for m in conversation.history()] == ["welcome"]


def test_failure_keeps_partial_text_and_sets_notice():
    conversation = Conversation()
    conversation.begin("question")
    conversation.append("half an ans")
    kept = conversation.fail()
    assert kept is not None and kept.text == "half an ans"
    assert conversation.notice == SERVICE_UNAVAILABLE_NOTICE
    assert not conversation.is_pending

    conversation.begin("try again")
    assert conversation.notice is None


def test_failure_without_text_abandons_placeholder():
    conversation = Conversation()
    conversation.begin("question")
    assert conversation.fail() is None
    assert [m.role for m in conversation.messages] == ["user"]
    assert conversation.notice == SERVICE_UNAVAILABLE_NOTICE
    assert [m.text for m in conversation.history()] == ["question"]


def test_runner_streams_reply_into_conversation():
    store = DocumentStore()
    store.add("A.txt", "Revenue grew substantially in Quebec.")
    generator = ScriptedGenerator(["Revenue grew ", "[File: A.txt]"])
    runner = ConversationRunner(QueryService(generator=generator))
    conversation = Conversation(welcome=True)

    message = asyncio.run(runner.run(conversation, "revenue", store))

    assert message is not None
    assert message.text == "Revenue grew [File: A.txt]"
    assert message.sources == ("A.txt",)
    assert conversation.document_ids == tuple(d.document_id for d in store)
    turns = generator.calls[0]["turns"]
    assert [(t.role, t.text) for t in turns][-1] == ("user", "revenue")
    assert turns[0].role == "model"


def test_runner_records_provider_failure_and_stays_usable():
    generator = ScriptedGenerator(["so far"], error=GenerationError("auth error"))
    runner = ConversationRunner(QueryService(generator=generator))
    conversation = Conversation()

    message = asyncio.run(runner.run(conversation, "hello", []))

    assert message is not None and message.text == "so far"
    assert conversation.notice == SERVICE_UNAVAILABLE_NOTICE
    generator.error = None
    follow_up = asyncio.run(runner.run(conversation, "again", []))
    assert follow_up is not None
    assert [m.role for m in conversation.messages] == ["user", "assistant", "user", "assistant"]


class BrokenRetriever:
    def retrieve(self, query, documents):
        raise RuntimeError("index unavailable")


class StallingGenerator:
    """Emits one fragment, then waits until the consumer gives up."""

    def __init__(self) -> None:
        self.closed = False

    async def stream(self, *, system_instruction, turns, temperature):
        try:
            yield "partial"
            await asyncio.Event().wait()
        finally:
            self.closed = True


def test_runner_releases_conversation_when_preparation_fails():
    runner = ConversationRunner(QueryService(retriever=BrokenRetriever(), generator=ScriptedGenerator()))
    conversation = Conversation()

    with pytest.raises(RuntimeError, match="index unavailable"):
        asyncio.run(runner.run(conversation, "hello", []))

    assert not conversation.is_pending
    assert conversation.notice == SERVICE_UNAVAILABLE_NOTICE
    conversation.begin("again")


def test_runner_cancellation_keeps_partial_reply_and_reraises():
    generator = StallingGenerator()
    runner = ConversationRunner(QueryService(generator=generator))
    conversation = Conversation()

    async def scenario() -> None:
        task = asyncio.create_task(runner.run(conversation, "hello", []))
        while conversation.pending is None or not conversation.pending.fragments:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert generator.closed
    assert not conversation.is_pending
    assert conversation.notice == CANCELLED_NOTICE
    assert [(m.role, m.text) for m in conversation.messages] == [("user", "hello"), ("assistant", "partial")]
