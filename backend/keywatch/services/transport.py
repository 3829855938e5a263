"""Bidirectional transcription stream over a WebSocket."""
import asyncio
import json
from typing import AsyncIterator, Optional, Protocol
import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus, InvalidURI, WebSocketException
from keywatch.audio.models import EncodedChunk
from keywatch.session.protocol import IDENTIFY_WORDS_TOOL
from keywatch.core.config import settings
from keywatch.core.errors import TransportAuthError, TransportError
from keywatch.core.logging import logger

SYSTEM_INSTRUCTION = (
    "You are a helpful transcription assistant. Your primary task is to transcribe speech accurately. "
    f'You have a tool called "{IDENTIFY_WORDS_TOOL}" that you must call whenever you detect a word that '
    "might have a common phonetic or regional spelling variation (e.g., colour/color, aluminium/aluminum). "
    "Pass the detected word variant to this tool."
)

IDENTIFY_WORDS_DECLARATION = {
    "name": IDENTIFY_WORDS_TOOL,
    "description": (
        "Identifies and processes words that have phonetic or regional spelling variations but the same "
        'meaning, such as "aluminum" and "aluminium". Call this function when such a word is detected in the speech.'
    ),
    "parameters": {
        "type": "OBJECT",
        "properties": {
            "word": {
                "type": "STRING",
                "description": 'The detected word variation (e.g., "aluminium").',
            },
        },
        "required": ["word"],
    },
}

_AUTH_STATUS_CODES = {401, 403}
_AUTH_MARKERS = ("requested entity was not found", "does not have permission", "api key not valid", "permission denied")


def is_auth_failure(reason: str) -> bool:
    lowered = (reason or "").lower()
    return any(marker in lowered for marker in _AUTH_MARKERS)


def build_setup_message() -> dict:
    return {
        "setup": {
            "model": settings.transport_model,
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": settings.transport_voice}}
                },
            },
            "inputAudioTranscription": {},
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "tools": [{"functionDeclarations": [IDENTIFY_WORDS_DECLARATION]}],
        }
    }


def realtime_input_message(chunk: EncodedChunk) -> dict:
    return {"realtimeInput": {"mediaChunks": [chunk.to_blob()]}}


def tool_response_message(call_id: Optional[str], name: str, result: str) -> dict:
    return {
        "toolResponse": {
            "functionResponses": [
                {"id": call_id, "name": name, "response": {"result": result}}
            ]
        }
    }


class TranscriptionTransport(Protocol):
    """What the session needs from the upstream transcription stream."""

    @property
    def is_ready(self) -> bool: ...

    def send_realtime_input(self, chunk: EncodedChunk) -> bool: ...

    def send_tool_response(self, call_id: Optional[str], name: str, result: str) -> bool: ...

    def messages(self) -> AsyncIterator[dict]: ...

    async def close(self) -> None: ...


class WebSocketTranscriptionTransport:
    """
    Upstream stream over `websockets`.

    Sends are fire-and-forget: they enqueue onto an outbound queue drained by
    a writer task, and are dropped while the connection is not open.
    """

    def __init__(self, url: Optional[str] = None, api_key: Optional[str] = None):
        self.url = url or settings.transport_url
        self.api_key = api_key if api_key is not None else settings.api_key
        self._ws = None
        self._outbound: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return self._ws is not None and not self._closed

    async def connect(self) -> None:
        """
        Open the stream and send the setup message.

        Raises:
            TransportAuthError: credentials were rejected
            TransportError: any other connection failure
        """
        url = f"{self.url}?key={self.api_key}" if self.api_key else self.url
        try:
            self._ws = await websockets.connect(
                url,
                open_timeout=settings.transport_open_timeout_s,
                max_size=None
            )
        except InvalidStatus as e:
            status = e.response.status_code
            if status in _AUTH_STATUS_CODES:
                raise TransportAuthError(f"HTTP {status}") from e
            raise TransportError(f"Transcription service refused connection: HTTP {status}") from e
        except (InvalidHandshake, InvalidURI) as e:
            raise TransportError(f"Transcription service handshake failed: {e}") from e
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"Could not reach transcription service: {e}") from e

        try:
            await self._ws.send(json.dumps(build_setup_message()))
        except ConnectionClosed as e:
            raise TransportError(f"Transcription stream closed during setup: {e}") from e
        self._writer = asyncio.create_task(self._drain_outbound())
        logger.info(f"Transcription stream open ({settings.transport_model})")

    def _enqueue(self, message: dict) -> bool:
        if not self.is_ready:
            return False
        self._outbound.put_nowait(json.dumps(message))
        return True

    def send_realtime_input(self, chunk: EncodedChunk) -> bool:
        return self._enqueue(realtime_input_message(chunk))

    def send_tool_response(self, call_id: Optional[str], name: str, result: str) -> bool:
        return self._enqueue(tool_response_message(call_id, name, result))

    async def _drain_outbound(self) -> None:
        while True:
            payload = await self._outbound.get()
            try:
                await self._ws.send(payload)
            except ConnectionClosed:
                logger.debug("Dropping outbound message: stream closed")
                return
            except (WebSocketException, OSError, RuntimeError) as e:
                logger.error(f"Outbound writer stopped: {e!r}")
                return

    async def messages(self) -> AsyncIterator[dict]:
        """
        Yield decoded inbound messages until the stream closes.

        Raises:
            TransportAuthError: the service closed the stream over credentials
            TransportError: the stream closed abnormally
        """
        if self._ws is None:
            return
        try:
            async for raw in self._ws:
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8")
                try:
                    yield json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON message from transcription stream")
        except ConnectionClosed as e:
            if self._closed:
                return
            reason = e.rcvd.reason if e.rcvd else ""
            code = e.rcvd.code if e.rcvd else None
            if is_auth_failure(reason):
                raise TransportAuthError(reason) from e
            if code not in (1000, 1001):
                raise TransportError(f"Transcription stream closed ({code}): {reason}") from e

    async def close(self) -> None:
        """Close the stream; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None
        if self._ws is not None:
            await self._ws.close()
            logger.info("Transcription stream closed")
