"""Per-session mutable state, owned by one SessionController."""
from dataclasses import dataclass, field
from typing import Optional
from keywatch.audio.buffers import AdaptiveBufferScheduler
from keywatch.audio.models import AdaptiveState
from keywatch.audio.playback import PlaybackScheduler
from keywatch.keywords.matcher import KeywordMatcher
from keywatch.keywords.registry import KeywordRegistry
from keywatch.transcript.reconciler import TranscriptReconciler
from keywatch.core.config import settings

NOT_CONNECTED = "Not Connected"
LISTENING = "Listening..."


@dataclass
class SessionState:
    """
    Everything one session mutates. Only touched from the event loop.

    `closed` is set first during teardown; every handler checks it on entry
    so late callbacks are rejected.
    """
    session_id: str
    keywords: KeywordRegistry
    adaptive: AdaptiveState = field(default_factory=AdaptiveState)
    reconciler: TranscriptReconciler = field(default_factory=TranscriptReconciler)
    matcher: KeywordMatcher = field(default_factory=KeywordMatcher)
    playback: PlaybackScheduler = field(default_factory=PlaybackScheduler)
    scheduler: Optional[AdaptiveBufferScheduler] = None
    started_at: Optional[float] = None
    session_seconds: int = 0
    status: str = NOT_CONNECTED
    closed: bool = False
    stopped_by_user: bool = False

    def __post_init__(self):
        if self.scheduler is None:
            self.scheduler = AdaptiveBufferScheduler(self.adaptive)

    def reset_for_start(self) -> None:
        """Clear transcript, detections and adaptive state ahead of a new session."""
        self.adaptive.reset(settings.buffer_initial_samples)
        self.scheduler.clear()
        self.playback.reset()
        self.reconciler.reset()
        self.matcher.reset()
        self.session_seconds = 0
        self.started_at = None
        self.closed = False
        self.stopped_by_user = False

    @property
    def current_speaker(self) -> str:
        if self.status != LISTENING:
            return self.status
        return self.reconciler.current_speaker or LISTENING

    def summary(self) -> dict:
        return {
            "session_id": self.session_id,
            "status": self.status,
            "session_seconds": self.session_seconds,
            "word_count": self.reconciler.word_count,
            "mention_count": self.matcher.mention_count,
            "current_speaker": self.current_speaker,
            "buffer_size_samples": self.adaptive.target_buffer_size_samples,
            "gain": round(self.adaptive.current_gain, 3),
            "stopped_by_user": self.stopped_by_user,
        }
