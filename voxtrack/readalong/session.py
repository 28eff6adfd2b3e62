"""
Read-Along Session Module

Drives one read-aloud run: sends chunks to the speech service, turns the
frames that come back into audio and indexed word events, keeps the editor
highlight on the word being played, and resumes after dropped connections.

Everything runs on one asyncio event loop. Callbacks from the transport carry
a token; once a session is stopped (or a connection replaced) its token stops
matching and late callbacks are ignored.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Set, Tuple, Union

from voxtrack.readalong.document_filter import Chunk, DocumentFilter, FilterOptions
from voxtrack.readalong.errors import (
    ConfigurationError,
    NothingToSpeakError,
    RecoveryExhaustedError,
    TransportError,
)
from voxtrack.readalong.protocol import (
    PATH_AUDIO,
    PATH_METADATA,
    PATH_TURN_END,
    WordBoundaryEvent,
    decode_frame,
    decode_metadata_body,
    is_protocol_artifact,
)
from voxtrack.readalong.recovery import RecoveryPlan, RecoveryPlanner
from voxtrack.readalong.synthesis_index import SynthesisIndex
from voxtrack.readalong.timeline import AudioTime, StreamTime
from voxtrack.readalong.word_matching import expand_to_token, find_word_index
from voxtrack.utils.config import config
from voxtrack.utils import logger

RawFrame = Union[str, bytes]


class Editor(Protocol):
    """Document the session reads from and highlights in."""

    def get_value(self) -> str: ...

    def get_cursor_offset(self) -> int: ...

    def get_selection(self) -> Optional[Tuple[str, int]]: ...

    def highlight_range(self, start: int, end: int) -> None: ...

    def clear_highlight(self) -> None: ...


class AudioSink(Protocol):
    """Playback buffer for the opaque audio bytes the service returns."""

    def append_chunk(self, data: bytes) -> None: ...

    def get_current_time_seconds(self) -> float: ...

    def get_buffered_end_seconds(self) -> float: ...

    def seek_and_restart(self, seconds: float) -> None: ...

    def finish(self) -> None: ...


@dataclass
class SynthesisRequest:
    """One request to the speech service."""

    request_id: str
    text: str
    voice: str
    rate: str = "+0%"
    volume: str = "+0%"


class Transport(Protocol):
    """Duplex channel to the speech service."""

    async def connect(
        self,
        on_frame: Callable[[RawFrame], None],
        on_close: Callable[[], None],
    ) -> None: ...

    async def send(self, request: SynthesisRequest) -> None: ...

    def close(self) -> None: ...


class ReadMode(str, Enum):
    """Which part of the document to read."""

    DOCUMENT = "document"
    CURSOR = "cursor"
    SELECTION = "selection"


@dataclass(frozen=True)
class SessionToken:
    """Identifies one session and one connection within it."""

    session_id: str
    connection: int = 0


@dataclass
class ChunkState:
    """Per-chunk bookkeeping owned by the session."""

    chunk: Chunk
    base: Optional[AudioTime] = None  # Where the chunk's audio starts
    stream_base: Optional[AudioTime] = None  # Where the current stream starts
    sent_from: int = 0  # Chunk text index the current request starts at
    scan_cursor: int = 0  # Just past the last matched word
    last_processed: int = 0  # Last highlighted text index
    finished: bool = False


@dataclass
class SessionSettings:
    """Tunable parameters of a session."""

    voice: str = field(default_factory=lambda: config.voice)
    rate: str = field(default_factory=lambda: config.voice_rate)
    volume: str = field(default_factory=lambda: config.voice_volume)
    max_retries: int = field(default_factory=lambda: config.max_retries)
    lookback: int = field(default_factory=lambda: config.recovery_lookback)
    search_window: int = field(default_factory=lambda: config.search_window)
    poll_interval: float = field(default_factory=lambda: config.poll_interval)
    drop_protocol_artifacts: bool = field(default_factory=lambda: config.drop_protocol_artifacts)


class ReadAlongSession:
    """
    Orchestrates a read-aloud run against editor, audio sink and transport.

    The session owns the synthesis index and all per-chunk cursors. Chunks are
    sent one request at a time; the next chunk is requested as soon as the
    previous one has been fully received, while its audio is still playing.
    """

    def __init__(
        self,
        editor: Editor,
        sink: AudioSink,
        transport: Transport,
        options: Optional[FilterOptions] = None,
        settings: Optional[SessionSettings] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.editor = editor
        self.sink = sink
        self.transport = transport
        self.options = options or FilterOptions.from_config()
        self.settings = settings or SessionSettings()
        self.on_error = on_error

        self.index = SynthesisIndex()
        self.planner = RecoveryPlanner(self.index, lookback=self.settings.lookback)

        self.chunks: List[ChunkState] = []
        self.document_base = 0
        self.send_index = 0
        self.playing_chunk = 0
        self.retry_count = 0
        self.is_playing = False
        self.is_recovering = False

        self._token: Optional[SessionToken] = None
        self._last_highlight: Optional[Tuple[int, int]] = None
        self._tasks: Set[asyncio.Task] = set()

    # Lifecycle

    async def start(self, text: str, document_base: int = 0) -> None:
        """
        Filter text and start reading it.

        Args:
            text: Text to read
            document_base: Offset of text within the editor document
        """
        if self.is_playing:
            self.stop()

        chunks = DocumentFilter(self.options).process(text)
        if not chunks:
            raise NothingToSpeakError("No speakable text found after filtering")

        self.chunks = [ChunkState(chunk=c) for c in chunks]
        self.document_base = document_base
        self.send_index = 0
        self.playing_chunk = 0
        self.retry_count = 0
        self.is_playing = True
        self._last_highlight = None
        self._token = SessionToken(session_id=uuid.uuid4().hex)

        logger.info(f"Reading {len(chunks)} chunk(s), {sum(len(c.text) for c in chunks)} characters")

        try:
            await self._connect()
        except TransportError:
            self.stop()
            raise
        await self._send_chunk(0)

    async def start_from_editor(self, mode: Union[ReadMode, str] = ReadMode.DOCUMENT) -> None:
        """Read the document, from the cursor, or the selection."""
        try:
            mode = ReadMode(mode)
        except ValueError:
            raise ConfigurationError(f"Unknown read mode: {mode}") from None

        if mode is ReadMode.SELECTION:
            selection = self.editor.get_selection()
            if selection and selection[0].strip():
                text, offset = selection
                await self.start(text, offset)
                return
            mode = ReadMode.CURSOR

        if mode is ReadMode.CURSOR:
            offset = self.editor.get_cursor_offset()
            await self.start(self.editor.get_value()[offset:], offset)
        else:
            await self.start(self.editor.get_value(), 0)

    def stop(self) -> None:
        """Stop synchronously and discard all session state."""
        was_playing = self.is_playing
        self.is_playing = False
        self.is_recovering = False
        self._token = None

        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        self.index.reset()
        self.chunks = []
        self._last_highlight = None
        self.editor.clear_highlight()
        self.transport.close()

        if was_playing:
            logger.info("Playback stopped")

    async def run_poll_loop(self) -> bool:
        """
        Update the highlight until playback ends.

        Returns:
            True if every chunk was played, False if the session was stopped
        """
        while self.is_playing:
            self.tick()
            if self.is_complete():
                return True
            await asyncio.sleep(self.settings.poll_interval)
        return False

    def is_complete(self) -> bool:
        """Check if every chunk was received and played to the end."""
        if not self.is_playing or not self.chunks:
            return False
        if not all(state.finished for state in self.chunks):
            return False
        return self.sink.get_current_time_seconds() >= self.sink.get_buffered_end_seconds()

    # Highlight

    def tick(self) -> Optional[Tuple[int, int]]:
        """
        Move the highlight to the word playing now.

        Safe to call at any rate; a tick that finds nothing leaves the
        highlight where it is.

        Returns:
            Highlighted document range, or None if nothing was resolved
        """
        if not self.is_playing:
            return None

        now = self.sink.get_current_time_seconds()
        event = self.index.find_active(now)
        if event is None:
            event = self.index.find_closest(now)
        if event is None or event.text_offset is None:
            return None
        if not 0 <= event.chunk < len(self.chunks):
            return None

        state = self.chunks[event.chunk]
        self.playing_chunk = event.chunk
        state.last_processed = event.text_offset

        start, end = state.chunk.source_range(event.text_offset, event.word_length)
        highlight = (self.document_base + start, self.document_base + end)
        if highlight != self._last_highlight:
            self.editor.highlight_range(*highlight)
            self._last_highlight = highlight
        return highlight

    # Inbound frames

    def handle_frame(self, frame: RawFrame, token: Optional[SessionToken]) -> None:
        """
        Process one frame from the transport.

        Frames whose token is not the current one belong to a stopped session
        or a replaced connection and are dropped.
        """
        if token is None or token != self._token or not self.is_playing:
            logger.debug("Dropped frame from a stale connection")
            return

        decoded = decode_frame(frame)
        if decoded.is_binary:
            if decoded.path == PATH_AUDIO and decoded.body:
                self._stream_healthy()
                self.sink.append_chunk(decoded.body)
        elif decoded.path == PATH_METADATA:
            self._stream_healthy()
            self._handle_metadata(decoded.body)
        elif decoded.path == PATH_TURN_END:
            self._stream_healthy()
            self._handle_turn_end()

    def _stream_healthy(self) -> None:
        # Only content on the current connection proves a reconnect worked
        if self.retry_count:
            logger.debug(f"Stream resumed after {self.retry_count} attempt(s)")
            self.retry_count = 0

    def _handle_metadata(self, body: str) -> None:
        try:
            events = decode_metadata_body(body)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping malformed metadata: {e}")
            return

        chunk_index = self.send_index
        if not 0 <= chunk_index < len(self.chunks):
            return
        state = self.chunks[chunk_index]

        accepted = []
        for event in events:
            if self.settings.drop_protocol_artifacts and is_protocol_artifact(event.text):
                continue
            event.chunk_index = chunk_index
            event.offset = StreamTime(event.offset).on(state.stream_base).ticks
            self._locate_word(state, event)
            accepted.append(event)

        self.index.add(accepted)

    def _locate_word(self, state: ChunkState, event: WordBoundaryEvent) -> None:
        """Resolve an event's position in the full chunk text and advance the cursor."""
        text = state.chunk.text
        found = -1

        if event.text_offset is not None:
            # Service offsets are relative to the text that was sent
            candidate = state.sent_from + event.text_offset
            if text[candidate:candidate + len(event.text)].lower() == event.text.lower():
                found = candidate

        if found == -1:
            found = find_word_index(
                text,
                event.text,
                state.scan_cursor,
                chunk_start=state.sent_from,
                search_window=self.settings.search_window,
            )

        if found == -1:
            logger.debug(f"No match for '{event.text}' after index {state.scan_cursor}")
            event.text_offset = None
            return

        event.text_offset, event.word_length = expand_to_token(text, found, len(event.text))
        state.scan_cursor = found + len(event.text)

    def _handle_turn_end(self) -> None:
        state = self.chunks[self.send_index]
        state.finished = True
        logger.debug(f"Chunk {self.send_index + 1}/{len(self.chunks)} received")

        next_index = self.send_index + 1
        if next_index < len(self.chunks):
            # Prefetch while the current chunk is still playing
            self._spawn(self._send_chunk(next_index))
        else:
            self.sink.finish()

    # Outbound requests

    async def _connect(self) -> None:
        previous = self._token
        token = SessionToken(previous.session_id, previous.connection + 1)
        self._token = token
        await self.transport.connect(
            on_frame=lambda frame: self.handle_frame(frame, token),
            on_close=lambda: self._on_transport_closed(token),
        )

    async def _send_chunk(
        self,
        chunk_index: int,
        from_index: int = 0,
        stream_base: Optional[AudioTime] = None,
    ) -> None:
        """
        Request speech for a chunk, or for its tail from from_index onward.

        stream_base is where the resulting audio lands on the timeline; by
        default the end of the audio buffered so far.
        """
        state = self.chunks[chunk_index]
        tail = state.chunk.text[from_index:]
        text = tail.strip()

        if stream_base is None:
            stream_base = AudioTime(self.sink.get_buffered_end_seconds())
        if from_index == 0:
            state.base = stream_base
        state.stream_base = stream_base
        state.sent_from = from_index + (len(tail) - len(tail.lstrip()))
        state.scan_cursor = max(state.scan_cursor, state.sent_from)
        state.finished = False
        self.send_index = chunk_index

        request = SynthesisRequest(
            request_id=uuid.uuid4().hex,
            text=text,
            voice=self.settings.voice,
            rate=self.settings.rate,
            volume=self.settings.volume,
        )
        logger.debug(f"Sending chunk {chunk_index + 1}/{len(self.chunks)} from index {from_index}")

        try:
            await self.transport.send(request)
        except TransportError as e:
            if self.is_recovering:
                raise
            logger.warning(f"Send failed: {e}")
            self._on_transport_closed(self._token)

    def _on_transport_closed(self, token: Optional[SessionToken]) -> None:
        if token is None or token != self._token or not self.is_playing:
            return
        if self.chunks and all(state.finished for state in self.chunks):
            return
        logger.warning("Connection to the speech service was interrupted")
        self._spawn(self.handle_interruption(token))

    # Recovery

    async def handle_interruption(self, token: Optional[SessionToken] = None) -> Optional[RecoveryPlan]:
        """
        Resume the interrupted chunk from the nearest sentence boundary.

        Overlapping triggers from one interruption are ignored while a
        recovery is in flight. Attempts count until the resent stream delivers
        audio or metadata, so a service that accepts requests and then drops
        them still runs out of retries. When the limit is reached the session
        is stopped and RecoveryExhaustedError is reported.

        Returns:
            The applied plan, or None if nothing was done
        """
        if token is not None and token != self._token:
            return None
        if not self.is_playing or self.is_recovering:
            return None

        self.is_recovering = True
        try:
            while self.is_playing:
                self.retry_count += 1
                if self.retry_count > self.settings.max_retries:
                    self._fail(RecoveryExhaustedError(
                        f"Gave up after {self.settings.max_retries} reconnect attempts"
                    ))
                    return None

                plan = self._plan_recovery()
                logger.info(
                    f"Recovering chunk {plan.chunk_index + 1} from index {plan.restart_index} "
                    f"at {plan.anchor} (attempt {self.retry_count}/{self.settings.max_retries})"
                )
                try:
                    await self._apply_recovery(plan)
                except TransportError as e:
                    logger.warning(f"Reconnect failed: {e}")
                    continue
                return plan
            return None
        finally:
            self.is_recovering = False

    def _plan_recovery(self) -> RecoveryPlan:
        return self.planner.plan(
            now_seconds=self.sink.get_current_time_seconds(),
            chunk_texts=[state.chunk.text for state in self.chunks],
            chunk_bases=self.chunk_bases(),
            playing_chunk=self.playing_chunk,
            last_processed={i: state.last_processed for i, state in enumerate(self.chunks)},
        )

    async def _apply_recovery(self, plan: RecoveryPlan) -> None:
        # Audio after the anchor is discarded, so any prefetched later chunks
        # have to be requested again as well
        for index in range(plan.chunk_index, len(self.chunks)):
            self.index.remove_chunk(index)
            if index > plan.chunk_index:
                self.chunks[index] = ChunkState(chunk=self.chunks[index].chunk)

        state = self.chunks[plan.chunk_index]
        state.scan_cursor = plan.restart_index
        state.last_processed = plan.restart_index
        self.playing_chunk = plan.chunk_index
        self.send_index = plan.chunk_index
        self._last_highlight = None

        # The anchor is absolute: seek to it as-is
        self.sink.seek_and_restart(plan.anchor.seconds)

        self.transport.close()
        await self._connect()

        if plan.advance:
            state.finished = True
            next_index = plan.chunk_index + 1
            if next_index < len(self.chunks):
                await self._send_chunk(next_index, stream_base=plan.anchor)
            else:
                self.sink.finish()
            return

        await self._send_chunk(plan.chunk_index, plan.restart_index, stream_base=plan.anchor)

    def _fail(self, error: Exception) -> None:
        logger.error(str(error))
        self.stop()
        if self.on_error:
            self.on_error(error)

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def token(self) -> Optional[SessionToken]:
        return self._token

    def chunk_bases(self) -> Dict[int, AudioTime]:
        return {i: s.base for i, s in enumerate(self.chunks) if s.base is not None}
