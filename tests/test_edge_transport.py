import asyncio
import json

import aiohttp
import pytest
from edge_tts.exceptions import NoAudioReceived

from fakes import FakeEditor, FakeSink
from voxtrack import edge_transport
from voxtrack.edge_transport import EdgeTransport, boundary_payload, resolve_voice
from voxtrack.readalong.errors import RecoveryExhaustedError, TransportError
from voxtrack.readalong.protocol import (
    PATH_AUDIO,
    PATH_METADATA,
    PATH_TURN_END,
    PATH_TURN_START,
    decode_frame,
    parse_metadata,
)
from voxtrack.readalong.session import ReadAlongSession, SessionSettings, SynthesisRequest


class FakeCommunicate:
    calls = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        FakeCommunicate.calls.append(kwargs)

    async def stream(self):
        yield {"type": "audio", "data": b"mp3-bytes"}
        yield {"type": "WordBoundary", "offset": 1_000_000, "duration": 2_000_000, "text": "Hello"}


class FailingCommunicate(FakeCommunicate):
    async def stream(self):
        yield {"type": "audio", "data": b"partial"}
        raise NoAudioReceived("dropped")


class UnreachableCommunicate:
    attempts = 0

    def __init__(self, **kwargs):
        UnreachableCommunicate.attempts += 1

    async def stream(self):
        raise aiohttp.ClientConnectionError("service unreachable")
        yield


def request(text="Hello"):
    return SynthesisRequest(request_id="req-1", text=text, voice="female", rate="+5%", volume="+0%")


def test_resolve_voice():
    assert resolve_voice("female") == "en-US-JennyNeural"
    assert resolve_voice("fr-FR-DeniseNeural") == "fr-FR-DeniseNeural"


def test_boundary_payload_parses_as_nested_shape():
    events = parse_metadata(json.loads(boundary_payload(10, 20, "word")))
    assert events[0].offset == 10
    assert events[0].duration == 20
    assert events[0].text == "word"
    assert events[0].text_offset is None


def test_stream_is_reframed(monkeypatch):
    monkeypatch.setattr(edge_transport.edge_tts, "Communicate", FakeCommunicate)
    frames, closes = [], []

    async def scenario():
        transport = EdgeTransport()
        await transport.connect(frames.append, lambda: closes.append(True))
        await transport.send(request())
        await transport._task

    asyncio.run(scenario())

    decoded = [decode_frame(f) for f in frames]
    assert [f.path for f in decoded] == [PATH_TURN_START, PATH_AUDIO, PATH_METADATA, PATH_TURN_END]
    assert decoded[1].body == b"mp3-bytes"
    assert parse_metadata(json.loads(decoded[2].body))[0].text == "Hello"
    assert all(f.headers["X-RequestId"] == "req-1" for f in decoded)
    assert closes == []
    assert FakeCommunicate.calls[-1]["voice"] == "en-US-JennyNeural"
    assert FakeCommunicate.calls[-1]["boundary"] == "WordBoundary"


def test_stream_failure_reports_close(monkeypatch):
    monkeypatch.setattr(edge_transport.edge_tts, "Communicate", FailingCommunicate)
    frames, closes = [], []

    async def scenario():
        transport = EdgeTransport()
        await transport.connect(frames.append, lambda: closes.append(True))
        await transport.send(request())
        await transport._task

    asyncio.run(scenario())
    assert closes == [True]
    assert decode_frame(frames[-1]).path == PATH_AUDIO


def test_send_requires_connection():
    with pytest.raises(TransportError):
        asyncio.run(EdgeTransport().send(request()))


def test_close_detaches_callbacks():
    async def scenario():
        transport = EdgeTransport()
        await transport.connect(lambda frame: None, lambda: None)
        transport.close()
        return transport

    assert not asyncio.run(scenario()).is_connected


def test_unreachable_service_stops_session(monkeypatch):
    monkeypatch.setattr(edge_transport.edge_tts, "Communicate", UnreachableCommunicate)
    UnreachableCommunicate.attempts = 0
    errors = []

    async def scenario():
        session = ReadAlongSession(
            FakeEditor("Hello there. Still reading."),
            FakeSink(),
            EdgeTransport(),
            settings=SessionSettings(voice="female", max_retries=3, poll_interval=0.001),
            on_error=errors.append,
        )
        await session.start_from_editor()
        for _ in range(200):
            if not session.is_playing:
                break
            await asyncio.sleep(0)
        return session

    session = asyncio.run(scenario())
    assert not session.is_playing
    assert len(errors) == 1
    assert isinstance(errors[0], RecoveryExhaustedError)
    assert UnreachableCommunicate.attempts == 4
