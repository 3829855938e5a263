"""Shared test helpers."""
import asyncio
from datetime import datetime
import numpy as np
import pytest
from keywatch.audio.models import AudioFrame


class FakeTransport:
    """In-memory stand-in for the upstream transcription stream."""

    def __init__(self, messages=(), error=None, hold_open=False):
        self.inbound = list(messages)
        self.error = error
        self.hold_open = hold_open
        self.connected = False
        self.sent = []
        self.tool_responses = []
        self.close_calls = 0
        self._released = None

    @property
    def is_ready(self) -> bool:
        return self.connected and self.close_calls == 0

    async def connect(self) -> None:
        self.connected = True

    def send_realtime_input(self, chunk) -> bool:
        if not self.is_ready:
            return False
        self.sent.append(chunk)
        return True

    def send_tool_response(self, call_id, name, result) -> bool:
        self.tool_responses.append((call_id, name, result))
        return True

    async def messages(self):
        for message in self.inbound:
            yield message
        if self.error is not None:
            raise self.error
        if self.hold_open:
            self._released = asyncio.Event()
            if self.close_calls == 0:
                await self._released.wait()

    async def close(self) -> None:
        self.close_calls += 1
        if self._released is not None:
            self._released.set()


class FixedClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 100.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def make_frame(samples, session_id="test", sample_rate=16000) -> AudioFrame:
    return AudioFrame(
        samples=np.asarray(samples, dtype=np.float32),
        sample_rate=sample_rate,
        timestamp=0.0,
        session_id=session_id
    )


def transcription_message(text, speaker=None) -> dict:
    content = {"inputTranscription": {"text": text}}
    if speaker:
        content["inputTranscription"]["segments"] = [{"speakerLabel": speaker}]
    return {"serverContent": content}


@pytest.fixture
def fixed_now():
    return lambda: datetime(2025, 3, 14, 9, 26, 53)
