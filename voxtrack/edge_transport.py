"""
Edge Transport Module

Speech service transport backed by edge-tts. Each request is streamed with
word boundaries enabled, and what comes back is re-framed into the service's
wire frames (binary audio frames and text metadata/turn frames) so the
session sees one frame format whatever the transport.
"""

import asyncio
import json
from typing import Callable, List, Optional, Union

import aiohttp
import edge_tts
from edge_tts.exceptions import EdgeTTSException

from voxtrack.readalong.errors import TransportError
from voxtrack.readalong.protocol import (
    PATH_AUDIO,
    PATH_METADATA,
    PATH_TURN_END,
    PATH_TURN_START,
    encode_binary_frame,
    encode_text_frame,
)
from voxtrack.readalong.session import SynthesisRequest
from voxtrack.utils import logger

# Good voices from Edge TTS
EDGE_VOICES = {
    "male": "en-US-GuyNeural",
    "female": "en-US-JennyNeural",
    "british_male": "en-GB-RyanNeural",
    "british_female": "en-GB-SoniaNeural",
    "narrator": "en-US-DavisNeural",
    "zh_female": "zh-CN-XiaoxiaoNeural",
    "zh_male": "zh-CN-YunxiNeural",
}


def resolve_voice(voice: str) -> str:
    """Map a short voice alias to an Edge voice name."""
    return EDGE_VOICES.get(voice.lower(), voice)


def boundary_payload(offset: int, duration: int, word: str) -> str:
    """Build a metadata body in the service's nested WordBoundary shape."""
    return json.dumps({
        "Metadata": [{
            "Type": "WordBoundary",
            "Data": {
                "Offset": offset,
                "Duration": duration,
                "text": {
                    "Text": word,
                    "Length": len(word),
                    "BoundaryType": "WordBoundary",
                },
            },
        }]
    }, ensure_ascii=False)


class EdgeTransport:
    """
    Transport that streams requests through edge-tts.

    edge-tts opens its own websocket per request, so connect() only
    registers the callbacks. A failed stream is reported through on_close;
    close() cancels the stream in flight and detaches the callbacks so
    nothing fires afterwards.
    """

    def __init__(self):
        self._on_frame: Optional[Callable[[Union[str, bytes]], None]] = None
        self._on_close: Optional[Callable[[], None]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self._on_frame is not None

    async def connect(
        self,
        on_frame: Callable[[Union[str, bytes]], None],
        on_close: Callable[[], None],
    ) -> None:
        self.close()
        self._on_frame = on_frame
        self._on_close = on_close

    async def send(self, request: SynthesisRequest) -> None:
        if not self.is_connected:
            raise TransportError("Transport is not connected")
        if not request.text:
            raise TransportError("Refusing to send an empty request")

        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.ensure_future(
            self._stream(request, self._on_frame, self._on_close)
        )

    def close(self) -> None:
        self._on_frame = None
        self._on_close = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _stream(
        self,
        request: SynthesisRequest,
        on_frame: Callable[[Union[str, bytes]], None],
        on_close: Callable[[], None],
    ) -> None:
        headers = {"X-RequestId": request.request_id}
        communicate = edge_tts.Communicate(
            text=request.text,
            voice=resolve_voice(request.voice),
            rate=request.rate,
            volume=request.volume,
            boundary="WordBoundary",
        )

        on_frame(encode_text_frame({**headers, "Path": PATH_TURN_START}, "{}"))
        try:
            async for chunk in communicate.stream():
                if chunk["type"] == "audio":
                    on_frame(encode_binary_frame(
                        {**headers, "Content-Type": "audio/mpeg", "Path": PATH_AUDIO},
                        chunk["data"],
                    ))
                elif chunk["type"] == "WordBoundary":
                    on_frame(encode_text_frame(
                        {**headers, "Content-Type": "application/json", "Path": PATH_METADATA},
                        boundary_payload(chunk["offset"], chunk["duration"], chunk["text"]),
                    ))
        except (EdgeTTSException, aiohttp.ClientError, OSError) as e:
            logger.warning(f"Edge TTS stream failed: {e}")
            on_close()
            return

        on_frame(encode_text_frame({**headers, "Path": PATH_TURN_END}, "{}"))


async def list_voices(locale: Optional[str] = None) -> List[dict]:
    """
    List available Edge voices.

    Args:
        locale: Optional locale prefix filter, e.g. "en" or "zh-CN"

    Returns:
        Voice descriptions as returned by the service
    """
    try:
        voices = await edge_tts.list_voices()
    except (EdgeTTSException, aiohttp.ClientError, OSError) as e:
        raise TransportError(f"Could not list voices: {e}") from e

    if locale:
        voices = [v for v in voices if v.get("Locale", "").startswith(locale)]
    return sorted(voices, key=lambda v: v.get("ShortName", ""))
