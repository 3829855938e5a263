"""Plain-text transcript export."""
from datetime import datetime
from typing import Optional, Sequence
from keywatch.transcript.models import TranscriptWord
from keywatch.core.errors import ExportError


def format_duration(total_seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    total_seconds = max(0, int(total_seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def group_by_speaker(history: Sequence[TranscriptWord]) -> list[tuple[str, str]]:
    """Join consecutive same-speaker words into (speaker, text) segments."""
    segments: list[tuple[str, str]] = []
    for entry in history:
        if segments and segments[-1][0] == entry.speaker:
            speaker, text = segments[-1]
            segments[-1] = (speaker, f"{text} {entry.word}")
        else:
            segments.append((entry.speaker, entry.word))
    return [(speaker, text.strip()) for speaker, text in segments if text.strip()]


def render_transcript_export(
    history: Sequence[TranscriptWord],
    duration_seconds: int,
    word_count: int,
    mention_count: int,
    exported_at: Optional[datetime] = None
) -> str:
    """
    Render the session transcript as a text document.

    Raises:
        ExportError: if there is no transcript data
    """
    if not history:
        raise ExportError("No transcript data to export.")

    exported_at = exported_at or datetime.now()
    lines = [
        "# Session Transcript",
        "",
        "## Metadata",
        f"- **Exported On:** {exported_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"- **Session Duration:** {format_duration(duration_seconds)}",
        f"- **Total Words:** {word_count}",
        f"- **Total Mentions:** {mention_count}",
        "",
        "---",
        "",
        "## Conversation",
        "",
    ]
    for speaker, text in group_by_speaker(history):
        lines.append(f"**{speaker}:** {text}")
        lines.append("")

    lines.extend(["---", "", "# End of Transcript"])
    return "\n".join(lines)


def export_filename(now: Optional[datetime] = None) -> str:
    """File name for a transcript export, safe on every filesystem."""
    now = now or datetime.now()
    stamp = now.isoformat(timespec="milliseconds").replace(":", "-").replace(".", "-")
    return f"transcript-session-{stamp}.txt"
