from __future__ import annotations

import asyncio

import pytest
from conftest import ScriptedGenerator

from docmind.documents import DocumentStore
from docmind.models import Message
from docmind.services.generation import GenerationError
from docmind.services.query import QueryService


def _documents() -> DocumentStore:
    store = DocumentStore()
    store.add("A.txt", "Revenue grew substantially in Quebec.")
    return store


def test_fragments_concatenate_to_the_full_reply():
    generator = ScriptedGenerator(["Revenue ", "", "grew ", "in Quebec."])
    service = QueryService(generator=generator)

    async def run() -> tuple[list[str], str]:
        stream = service.stream_reply("revenue", [], _documents())
        received = [fragment async for fragment in stream]
        return received, stream.text

    received, text = asyncio.run(run())
    assert received == ["Revenue ", "grew ", "in Quebec."]
    assert "".join(received) == text == "Revenue grew in Quebec."


def test_provider_receives_instruction_history_and_temperature():
    generator = ScriptedGenerator()
    service = QueryService(generator=generator)
    history = [
        Message(message_id="1", role="user", text="hello"),
        Message(message_id="2", role="assistant", text="hi there"),
    ]
    asyncio.run(service.stream_reply("revenue", history, _documents()).collect())

    call = generator.calls[0]
    assert call["temperature"] == 0.7
    assert call["system_instruction"].endswith("[SOURCE: A.txt]\nRevenue grew substantially in Quebec.")
    assert [(t.role, t.text) for t in call["turns"]] == [
        ("user", "hello"),
        ("model", "hi there"),
        ("user", "revenue"),
    ]


def test_retrieval_runs_before_the_first_fragment_is_requested():
    generator = ScriptedGenerator()
    service = QueryService(generator=generator)
    stream = service.stream_reply("revenue", [], _documents())
    assert stream.retrieval.kind == "chunks"
    assert stream.sources == ("A.txt",)
    assert generator.emitted == 0
    asyncio.run(stream.aclose())


def test_first_fragment_arrives_before_the_reply_is_finished():
    generator = ScriptedGenerator(["one", "two", "three"])
    service = QueryService(generator=generator)

    async def run() -> int:
        stream = service.stream_reply("revenue", [], _documents())
        await stream.__anext__()
        emitted = generator.emitted
        await stream.aclose()
        return emitted

    assert asyncio.run(run()) == 1


def test_provider_failure_is_terminal_and_keeps_partial_text():
    generator = ScriptedGenerator(["partial ", "reply"], error=GenerationError("quota exceeded"))
    service = QueryService(generator=generator)

    async def run():
        stream = service.stream_reply("revenue", [], _documents())
        with pytest.raises(GenerationError):
            async for _ in stream:
                pass
        return stream

    stream = asyncio.run(run())
    assert stream.text == "partial reply"
    assert isinstance(stream.error, GenerationError)
    assert stream.closed


def test_unexpected_backend_errors_are_wrapped():
    generator = ScriptedGenerator(["x"], error=ConnectionError("network down"))
    service = QueryService(generator=generator)
    with pytest.raises(GenerationError, match="network down"):
        asyncio.run(service.stream_reply("revenue", [], _documents()).collect())


def test_caller_can_stop_consuming_and_close_the_provider_stream():
    generator = ScriptedGenerator(["a", "b", "c", "d"])
    service = QueryService(generator=generator)

    async def run():
        stream = service.stream_reply("revenue", [], _documents())
        async with stream:
            async for fragment in stream:
                if fragment == "b":
                    break
        return stream

    stream = asyncio.run(run())
    assert stream.text == "ab"
    assert stream.cancelled and stream.closed
    assert generator.closed
    assert generator.emitted == 2


def test_answer_drains_stream_and_reports_kind():
    service = QueryService(generator=ScriptedGenerator(["Hi", "!"]))
    answer = asyncio.run(service.answer("hello", [], DocumentStore()))
    assert answer.text == "Hi!"
    assert answer.kind == "workspace_empty"
    assert answer.sources == ()
    assert answer.latency_ms >= 0
