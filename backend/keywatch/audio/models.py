"""Audio data models and structures."""
from dataclasses import dataclass
from typing import Optional
import numpy as np


@dataclass
class AudioFrame:
    """Represents a single captured audio frame with metadata."""
    samples: np.ndarray  # float32 mono samples in [-1.0, 1.0]
    sample_rate: int
    timestamp: float  # Unix timestamp when frame was captured
    session_id: str

    def __post_init__(self):
        """Validate frame data."""
        if self.samples.dtype != np.float32:
            raise ValueError(f"Expected float32 samples, got {self.samples.dtype}")
        if len(self.samples.shape) != 1:
            raise ValueError(f"Expected mono (1D array), got shape {self.samples.shape}")

    def __len__(self) -> int:
        return len(self.samples)


@dataclass
class EncodedChunk:
    """A flushed batch of frames, PCM16-encoded and base64 wrapped for transport."""
    data: str
    sample_rate: int
    sample_count: int

    @property
    def mime_type(self) -> str:
        return f"audio/pcm;rate={self.sample_rate}"

    def to_blob(self) -> dict:
        return {"data": self.data, "mimeType": self.mime_type}


@dataclass
class AdaptiveState:
    """Per-session adaptive audio state: AGC gain and send-buffer sizing."""
    current_gain: float = 1.0
    target_buffer_size_samples: int = 4096 * 2
    last_message_arrival_time: Optional[float] = None  # seconds, monotonic

    def reset(self, initial_buffer_samples: int) -> None:
        """Reset for a new session."""
        self.current_gain = 1.0
        self.target_buffer_size_samples = initial_buffer_samples
        self.last_message_arrival_time = None
