"""WebSocket endpoint: client audio in, transcript/detection updates out."""
import asyncio
import json
import uuid
from typing import List, Literal, Optional
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError
from keywatch.audio.ingestion import bytes_to_audio_frame, validate_audio_data
from keywatch.keywords.registry import KeywordRegistry
from keywatch.services.capture import SoundDeviceSource
from keywatch.services.session_registry import session_registry
from keywatch.services.transport import WebSocketTranscriptionTransport
from keywatch.session.controller import SessionController
from keywatch.core.errors import (
    CapturePermissionError, KeywordValidationError, TransportAuthError, TransportError
)
from keywatch.core.logging import logger


class ControlCommand(BaseModel):
    """A JSON control message from the client."""
    type: Literal[
        "start", "stop", "reset", "set_keywords", "add_keyword", "edit_keyword",
        "delete_keyword", "reset_keyword_count", "reset_keywords", "set_aliases"
    ]
    text: Optional[str] = None
    keyword: Optional[str] = None
    spec: Optional[str] = None
    aliases: List[str] = []
    source: Optional[str] = None  # capture on the server instead of streaming frames


def create_transport() -> WebSocketTranscriptionTransport:
    """Upstream transport for a new session."""
    return WebSocketTranscriptionTransport()


def apply_keyword_command(keywords: KeywordRegistry, command: ControlCommand) -> None:
    """
    Apply a keyword edit.

    Raises:
        KeywordValidationError: the edit was rejected; nothing changed
    """
    if command.type == "set_keywords":
        keywords.replace_from_text(command.text or "")
    elif command.type == "add_keyword":
        keywords.add(command.spec or "", command.aliases)
    elif command.type == "edit_keyword":
        keywords.edit(command.keyword or "", command.spec or "")
    elif command.type == "delete_keyword":
        keywords.delete(command.keyword or "")
    elif command.type == "reset_keyword_count":
        keywords.reset_count(command.keyword or "")
    elif command.type == "set_aliases":
        keywords.set_aliases(command.keyword or "", command.aliases)
    elif command.type == "reset_keywords":
        keywords.reset()


class SessionConnection:
    """One client connection and the session it drives."""

    def __init__(self, websocket: WebSocket, session_id: str, channels: int = 1):
        self.websocket = websocket
        self.session_id = session_id
        self.channels = channels
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.controller: Optional[SessionController] = None
        self.run_task: Optional[asyncio.Task] = None
        self.keywords = KeywordRegistry()

    def push(self, message: dict) -> None:
        self.outbox.put_nowait(message)

    async def send_updates(self) -> None:
        """Forward queued updates to the client."""
        while True:
            message = await self.outbox.get()
            try:
                await self.websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug(f"Stopped sending updates for session {self.session_id}: {e}")
                return

    async def start_session(self, source_type: Optional[str] = None) -> None:
        """
        Connect upstream and start a session.

        Args:
            source_type: When set, audio is captured from a local device on
                the server (e.g. "microphone") instead of the client's frames
        """
        if self.controller is not None and not self.controller.state.closed:
            return
        if len(self.keywords) == 0:
            self.push({"type": "error", "kind": "validation", "message": "Set your keywords before starting the session."})
            return

        source = SoundDeviceSource(self.session_id, source_type=source_type) if source_type else None
        transport = create_transport()
        self.controller = SessionController(
            self.session_id, transport, keywords=self.keywords, source=source, on_update=self.push
        )
        await session_registry.register(self.controller)
        try:
            await transport.connect()
        except TransportAuthError as e:
            await self.controller.stop()
            self.push({"type": "error", "kind": "credentials", "message": str(e)})
            return
        except TransportError as e:
            await self.controller.stop()
            self.push({"type": "error", "kind": "transport", "message": str(e)})
            return

        try:
            await self.controller.start()
        except CapturePermissionError as e:
            logger.error(f"Capture failed for session {self.session_id}: {e}")
            await self.controller.stop()
            self.push({"type": "error", "kind": "permission", "message": str(e)})
            return
        self.run_task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        try:
            await self.controller.run()
        except (TransportAuthError, TransportError):
            # Already torn down and reported by the controller
            pass

    async def handle_command(self, raw: str) -> None:
        try:
            command = ControlCommand.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Invalid control message from {self.session_id}: {e}")
            self.push({"type": "error", "kind": "validation", "message": "Invalid control message"})
            return

        if command.type == "start":
            if command.text:
                try:
                    self.keywords.replace_from_text(command.text)
                except KeywordValidationError as e:
                    self.push({"type": "error", "kind": "validation", "message": str(e)})
                    return
            await self.start_session(command.source)
        elif command.type == "stop":
            if self.controller is not None:
                await self.controller.stop(by_user=True)
        elif command.type == "reset":
            if self.controller is not None:
                await self.controller.stop()
                self.controller.reset()
            else:
                self.keywords.reset()
            self.push({"type": "keywords", "keywords": self.keywords.to_list()})
        else:
            try:
                apply_keyword_command(self.keywords, command)
            except KeywordValidationError as e:
                self.push({"type": "error", "kind": "validation", "message": str(e)})
                return
            self.push({"type": "keywords", "keywords": self.keywords.to_list()})

    def handle_audio(self, data: bytes) -> None:
        if self.controller is None or self.controller.state.closed:
            return
        if not validate_audio_data(data, self.channels):
            logger.warning(f"Invalid audio data from session {self.session_id}")
            return
        frame = bytes_to_audio_frame(data, self.session_id, channels=self.channels)
        self.controller.handle_audio_frame(frame)

    async def close(self) -> None:
        if self.controller is not None:
            await self.controller.stop()
        if self.run_task is not None:
            self.run_task.cancel()
        await session_registry.unregister(self.session_id)


async def websocket_session_endpoint(websocket: WebSocket, channels: int = 1) -> None:
    """
    WebSocket endpoint handler for /ws/session.

    Binary messages are PCM16 frames; text messages are JSON control commands.

    Args:
        websocket: Connection to accept
        channels: Interleaved channels per binary frame, validated by the route
    """
    await websocket.accept()

    session_id = f"ws-{uuid.uuid4().hex[:8]}"
    logger.info(f"New WebSocket connection: {session_id}")

    connection = SessionConnection(websocket, session_id, channels=channels)
    sender = asyncio.create_task(connection.send_updates())
    connection.push({"type": "hello", "session_id": session_id, "keywords": connection.keywords.to_list()})

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("bytes") is not None:
                connection.handle_audio(message["bytes"])
            elif message.get("text") is not None:
                await connection.handle_command(message["text"])
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for session {session_id}")
    finally:
        await connection.close()
        # Flush anything queued during teardown before the socket goes away
        while not connection.outbox.empty():
            try:
                await websocket.send_json(connection.outbox.get_nowait())
            except (RuntimeError, WebSocketDisconnect):
                break
        sender.cancel()
        logger.info(f"Cleaned up session {session_id}")
