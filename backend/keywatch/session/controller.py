"""Session controller: consumes inbound events in arrival order on one loop."""
import asyncio
import time
from datetime import datetime
from typing import Callable, List, Optional, Set
from keywatch.analysis.correlation import CorrelationSnapshot, compute_correlation
from keywatch.audio.models import AudioFrame
from keywatch.audio.pipeline import process_audio_frame
from keywatch.keywords.registry import KeywordRegistry
from keywatch.services.capture import SoundDeviceSource
from keywatch.services.transport import TranscriptionTransport
from keywatch.session.protocol import (
    AudioReply, InboundEvent, ToolCall, Transcription, TurnComplete, parse_server_message
)
from keywatch.session.state import LISTENING, NOT_CONNECTED, SessionState
from keywatch.transcript.canonicalizer import canonicalize
from keywatch.transcript.export import render_transcript_export
from keywatch.transcript.models import TranscriptionUpdate
from keywatch.core.config import settings
from keywatch.core.errors import (
    MalformedPayloadError, PlaybackDecodeError, TransportAuthError, TransportError
)
from keywatch.core.logging import logger

UpdateListener = Callable[[dict], None]


class SessionController:
    """
    Owns one SessionState and every resource of a live session.

    Handlers are synchronous units of work except for the playback decode,
    which is awaited. Outbound audio is fire-and-forget.
    """

    def __init__(
        self,
        session_id: str,
        transport: TranscriptionTransport,
        keywords: Optional[KeywordRegistry] = None,
        source: Optional[SoundDeviceSource] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
        on_update: Optional[UpdateListener] = None
    ):
        self.transport = transport
        self.source = source
        self.clock = clock
        self.now = now
        self.on_update = on_update
        self.state = SessionState(
            session_id=session_id,
            keywords=keywords if keywords is not None else KeywordRegistry()
        )
        self.state.reconciler.now = now
        self.state.playback.clock = clock
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.Task] = None
        self._pulse_handles: Set[asyncio.TimerHandle] = set()
        self._stopped = False

    @property
    def session_id(self) -> str:
        return self.state.session_id

    @property
    def keywords(self) -> KeywordRegistry:
        return self.state.keywords

    def _emit(self, message: dict) -> None:
        if self.on_update is not None:
            self.on_update(message)

    # Lifecycle

    async def start(self) -> None:
        """
        Reset per-session state and start the clock and capture source.

        Raises:
            CapturePermissionError: the capture source could not be opened
        """
        self._loop = asyncio.get_running_loop()
        self.state.reset_for_start()
        self._stopped = False

        if self.source is not None:
            self.source.start(self.handle_audio_frame, self._loop)

        self.state.started_at = self.clock()
        self.state.status = LISTENING
        self._timer = asyncio.create_task(self._tick())
        logger.info(f"Session {self.session_id} started with {len(self.keywords)} keywords")
        self._emit({"type": "session", **self.state.summary()})

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(1.0)
            self.state.session_seconds = int(self.session_time())
            self._emit({"type": "session", **self.state.summary()})

    def session_time(self) -> float:
        """Seconds since the session started."""
        if self.state.started_at is None:
            return 0.0
        return max(0.0, self.clock() - self.state.started_at)

    async def run(self) -> None:
        """
        Consume the transport until it ends, then tear down.

        Transport failures always tear the session down before propagating.
        """
        try:
            async for raw in self.transport.messages():
                if self.state.closed:
                    break
                await self.handle_server_message(raw)
        except TransportAuthError as e:
            logger.error(f"Session {self.session_id}: credentials rejected: {e}")
            await self.stop()
            self._emit({"type": "error", "kind": "credentials", "message": str(e)})
            raise
        except TransportError as e:
            logger.error(f"Session {self.session_id}: transport failure: {e}")
            await self.stop()
            self._emit({
                "type": "error",
                "kind": "transport",
                "message": "A connection error occurred with the transcription service. Please try again."
            })
            raise
        await self.stop()

    async def stop(self, by_user: bool = False) -> None:
        """
        Tear the session down: timer, playback sources, transport, capture,
        then the audio contexts. Safe to call any number of times.
        """
        if by_user:
            self.state.stopped_by_user = True
        if self._stopped:
            return
        self._stopped = True
        self.state.closed = True

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for handle in self._pulse_handles:
            handle.cancel()
        self._pulse_handles.clear()
        self.state.keywords.clear_mentioned(self.state.keywords.names())

        self.state.playback.stop_all()

        try:
            await self.transport.close()
        except Exception as e:
            logger.error(f"Error closing transport for session {self.session_id}: {e}")

        if self.source is not None:
            self.source.stop()

        self.state.playback.close()
        self.state.scheduler.clear()

        if self.state.started_at is not None:
            self.state.session_seconds = int(self.session_time())
        self.state.status = NOT_CONNECTED
        self.state.reconciler.reset_prefix()
        logger.info(f"Session {self.session_id} stopped")
        self._emit({"type": "session", **self.state.summary()})

    def reset(self) -> None:
        """Clear transcript, detections and keywords after a stopped session."""
        self.state.reset_for_start()
        self.state.keywords.reset()
        self.state.status = NOT_CONNECTED
        self.state.closed = True

    # Inbound audio

    def handle_audio_frame(self, frame: AudioFrame) -> None:
        """Gain-normalize, buffer, and (maybe) send one captured frame."""
        if self.state.closed:
            return
        chunk = process_audio_frame(frame, self.state.scheduler)
        if chunk is None:
            return
        if not self.transport.send_realtime_input(chunk):
            logger.debug(f"Transport not ready, dropped {chunk.sample_count} samples")

    # Inbound transport messages

    async def handle_server_message(self, raw: dict) -> None:
        """Adapt the send buffer to message cadence, then dispatch the message's events."""
        if self.state.closed:
            return
        self.state.scheduler.on_message_arrival(self.clock())

        try:
            events = parse_server_message(raw)
        except MalformedPayloadError as e:
            logger.warning(f"Ignoring malformed message: {e}")
            return

        for event in events:
            if self.state.closed:
                return
            await self.dispatch(event)

    async def dispatch(self, event: InboundEvent) -> None:
        if isinstance(event, AudioReply):
            await self.handle_audio_reply(event)
        elif isinstance(event, Transcription):
            self.handle_transcription(event)
        elif isinstance(event, ToolCall):
            self.handle_tool_call(event)
        elif isinstance(event, TurnComplete):
            self.state.reconciler.reset_prefix()

    async def handle_audio_reply(self, event: AudioReply) -> None:
        try:
            await self.state.playback.enqueue(event.data)
        except PlaybackDecodeError as e:
            logger.error(f"Error processing audio reply: {e}")

    def handle_transcription(self, event: Transcription) -> None:
        """Reconcile a snapshot, scan the new words, commit them, and publish."""
        if self.state.closed:
            return
        reconciler = self.state.reconciler
        batch = reconciler.begin(TranscriptionUpdate(text=event.text, speaker_label=event.speaker))
        if batch is None:
            return

        result = self.state.matcher.scan(
            batch.words,
            self.state.keywords,
            context=batch.full_text,
            speaker=batch.speaker,
            timestamp=self.now(),
            session_time=self.session_time()
        )
        entries = reconciler.commit(batch, result.alerted_indices)

        if result.reached_target:
            self._schedule_pulse_end(result.reached_target)

        self._emit({
            "type": "transcript",
            "removed": batch.words_to_remove,
            "entries": [entry.to_dict() for entry in entries],
            "speaker": self.state.current_speaker,
            "word_count": reconciler.word_count,
        })
        if result.detections:
            self._emit({
                "type": "detections",
                "detections": [d.to_dict() for d in result.detections],
                "mention_count": self.state.matcher.mention_count,
            })
            self._emit({"type": "keywords", "keywords": self.state.keywords.to_list()})
            self._emit({"type": "correlation", **self.correlation().to_dict()})

    def _schedule_pulse_end(self, names: List[str]) -> None:
        loop = self._loop or asyncio.get_running_loop()
        delay = settings.mention_pulse_ms / 1000.0

        def end_pulse() -> None:
            self._pulse_handles.discard(handle)
            self.state.keywords.clear_mentioned(names)
            self._emit({"type": "keywords", "keywords": self.state.keywords.to_list()})

        handle = loop.call_later(delay, end_pulse)
        self._pulse_handles.add(handle)

    def handle_tool_call(self, event: ToolCall) -> None:
        """Apply a canonicalization directive and acknowledge it."""
        if self.state.closed:
            return
        reconciler = self.state.reconciler
        result = canonicalize(event.word, reconciler.display_window, reconciler.history)

        if result.applied:
            self._emit({
                "type": "canonicalized",
                "variant": result.variant,
                "canonical": result.canonical,
                "entry_id": (result.display_entry or result.history_entry).id,
            })

        self.transport.send_tool_response(
            event.id, event.name, f"Processed word variant: {result.variant}"
        )

    # Views

    def correlation(self) -> CorrelationSnapshot:
        return compute_correlation(self.state.matcher.dataset, self.state.keywords)

    def export_text(self, exported_at: Optional[datetime] = None) -> str:
        """
        Raises:
            ExportError: no transcript yet
        """
        return render_transcript_export(
            self.state.reconciler.history,
            duration_seconds=self.state.session_seconds,
            word_count=self.state.reconciler.word_count,
            mention_count=self.state.matcher.mention_count,
            exported_at=exported_at or self.now()
        )
