"""Local audio capture via sounddevice."""
import asyncio
import time
from typing import Callable, Optional
import numpy as np
from keywatch.audio.ingestion import mixdown_to_mono
from keywatch.audio.models import AudioFrame
from keywatch.core.config import settings
from keywatch.core.errors import CapturePermissionError
from keywatch.core.logging import logger

FrameHandler = Callable[[AudioFrame], None]


class SoundDeviceSource:
    """
    Captures fixed-size frames from an input device.

    PortAudio invokes the callback on its own thread; frames are handed to
    the event loop with `call_soon_threadsafe` so all session state is only
    touched on the loop.
    """

    def __init__(
        self,
        session_id: str,
        source_type: str = "microphone",
        device: Optional[int] = None,
        channels: Optional[int] = None
    ):
        self.session_id = session_id
        self.source_type = source_type
        self.device = device
        self.channels = channels or settings.channels
        self._stream = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handler: Optional[FrameHandler] = None

    def start(self, handler: FrameHandler, loop: asyncio.AbstractEventLoop) -> None:
        """
        Open the device and start delivering frames to `handler` on `loop`.

        Raises:
            CapturePermissionError: the device could not be opened
        """
        import sounddevice as sd

        self._loop = loop
        self._handler = handler
        try:
            self._stream = sd.InputStream(
                samplerate=settings.sample_rate,
                blocksize=settings.frame_size,
                device=self.device,
                channels=self.channels,
                dtype="float32",
                callback=self._callback
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream = None
            raise CapturePermissionError(self.source_type, str(e)) from e

        logger.info(f"Capturing {self.source_type} at {settings.sample_rate} Hz ({self.channels} ch)")

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug(f"Capture status: {status}")
        if self._loop is None or self._handler is None:
            return
        frame = AudioFrame(
            samples=mixdown_to_mono(np.array(indata, dtype=np.float32)),
            sample_rate=settings.sample_rate,
            timestamp=time.time(),
            session_id=self.session_id
        )
        try:
            self._loop.call_soon_threadsafe(self._handler, frame)
        except RuntimeError:
            # Loop already closed
            pass

    def stop(self) -> None:
        """Stop and close the device; safe to call more than once."""
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        self._handler = None
        stream.stop()
        stream.close()
        logger.info(f"Stopped {self.source_type} capture")
