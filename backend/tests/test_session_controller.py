"""Tests for the session controller event handling and teardown."""
import asyncio
from datetime import datetime
import numpy as np
import pytest
from keywatch.keywords.registry import KeywordRegistry
from keywatch.session.controller import SessionController
from keywatch.session.protocol import IDENTIFY_WORDS_TOOL
from keywatch.session.state import LISTENING, NOT_CONNECTED
from keywatch.core.config import settings
from keywatch.core.errors import CapturePermissionError, TransportAuthError, TransportError
from conftest import FakeTransport, FixedClock, make_frame, transcription_message


def make_controller(transport=None, keywords=("AI:3",), clock=None, now=None):
    updates = []
    controller = SessionController(
        "session-test",
        transport or FakeTransport(),
        keywords=KeywordRegistry(initial=list(keywords)),
        clock=clock or FixedClock(),
        on_update=updates.append,
        now=now or datetime.now
    )
    return controller, updates


def types_of(updates):
    return [u["type"] for u in updates]


def test_transcription_produces_detections():
    """Words are reconciled, matched and committed with alert flags."""
    clock = FixedClock(50.0)
    controller, updates = make_controller(clock=clock)

    async def run():
        await controller.start()
        clock.advance(7.0)
        await controller.handle_server_message(transcription_message("AI is great AI AI", "speaker_1"))
        await controller.stop()

    asyncio.run(run())

    matcher = controller.state.matcher
    assert matcher.mention_count == 3
    assert [d.session_time_seconds for d in matcher.dataset] == [7.0, 7.0, 7.0]
    assert controller.keywords.get("AI").count == 3
    history = controller.state.reconciler.history
    assert [e.is_alert for e in history] == [False, False, False, False, True]
    assert {e.speaker for e in history} == {"Speaker 1"}

    kinds = types_of(updates)
    assert kinds[0] == "session"
    for kind in ("transcript", "detections", "keywords", "correlation"):
        assert kind in kinds


def test_mention_pulse_reverts():
    controller, updates = make_controller(keywords=("AI",))
    original = settings.mention_pulse_ms
    settings.mention_pulse_ms = 10

    async def run():
        await controller.start()
        await controller.handle_server_message(transcription_message("AI"))
        assert controller.keywords.get("AI").is_mentioned
        await asyncio.sleep(0.05)
        mentioned = controller.keywords.get("AI").is_mentioned
        await controller.stop()
        return mentioned

    try:
        assert asyncio.run(run()) is False
    finally:
        settings.mention_pulse_ms = original

    # Count stays at the target after the pulse
    assert controller.keywords.get("AI").count == 1


def test_tool_call_canonicalizes_and_acknowledges():
    transport = FakeTransport()
    controller, updates = make_controller(transport=transport)
    tool_call = {
        "toolCall": {
            "functionCalls": [{"id": "call-1", "name": IDENTIFY_WORDS_TOOL, "args": {"word": "Aluminium"}}]
        }
    }

    async def run():
        await controller.start()
        await controller.handle_server_message(transcription_message("cheap aluminium cans"))
        await controller.handle_server_message(tool_call)
        await controller.stop()

    asyncio.run(run())

    assert [e.word for e in controller.state.reconciler.history] == ["cheap", "aluminum", "cans"]
    assert transport.tool_responses == [
        ("call-1", IDENTIFY_WORDS_TOOL, "Processed word variant: aluminium")
    ]
    canonicalized = [u for u in updates if u["type"] == "canonicalized"]
    assert canonicalized[0]["canonical"] == "aluminum"


def test_tool_call_with_unusable_word_is_acknowledged():
    """Every directive gets a response, even when nothing can be rewritten."""
    transport = FakeTransport()
    controller, updates = make_controller(transport=transport)
    bad_word = {
        "toolCall": {"functionCalls": [{"id": "c1", "name": IDENTIFY_WORDS_TOOL, "args": {"word": 5}}]}
    }
    beside_bad_content = {
        "serverContent": {"inputTranscription": {"text": ["a"]}},
        "toolCall": {"functionCalls": [{"id": "c2", "name": IDENTIFY_WORDS_TOOL, "args": {"word": "grey"}}]},
    }

    async def run():
        await controller.start()
        await controller.handle_server_message(transcription_message("a grey day"))
        await controller.handle_server_message(bad_word)
        await controller.handle_server_message(beside_bad_content)
        await controller.stop()

    asyncio.run(run())

    assert transport.tool_responses == [
        ("c1", IDENTIFY_WORDS_TOOL, "Processed word variant: "),
        ("c2", IDENTIFY_WORDS_TOOL, "Processed word variant: grey"),
    ]
    assert [e.word for e in controller.state.reconciler.history] == ["a", "gray", "day"]
    assert "canonicalized" in types_of(updates)


def test_turn_complete_resets_prefix():
    controller, _ = make_controller()
    turn = {"serverContent": {"inputTranscription": {"text": "first words"}, "turnComplete": True}}

    async def run():
        await controller.start()
        await controller.handle_server_message(turn)
        await controller.handle_server_message(transcription_message("next"))
        await controller.stop()

    asyncio.run(run())

    assert [e.word for e in controller.state.reconciler.history] == ["first", "words", "next"]


def test_audio_frames_are_sent_once_buffered():
    transport = FakeTransport()
    controller, _ = make_controller(transport=transport)

    async def run():
        await transport.connect()
        await controller.start()
        controller.handle_audio_frame(make_frame(np.full(4096, 0.2)))
        controller.handle_audio_frame(make_frame(np.full(4096, 0.2)))
        await controller.stop()
        controller.handle_audio_frame(make_frame(np.full(8192, 0.2)))

    asyncio.run(run())

    assert len(transport.sent) == 1
    assert transport.sent[0].sample_count == 8192


def test_inbound_messages_adapt_buffer():
    clock = FixedClock(0.0)
    controller, _ = make_controller(clock=clock)

    async def run():
        await controller.start()
        await controller.handle_server_message({})
        clock.advance(1.0)
        await controller.handle_server_message({})
        await controller.stop()

    asyncio.run(run())

    assert controller.state.adaptive.target_buffer_size_samples == 12288


def test_malformed_and_undecodable_messages_are_tolerated():
    controller, _ = make_controller()
    bad_audio = {"serverContent": {"modelTurn": {"parts": [{"inlineData": {"data": "%%%"}}]}}}

    async def run():
        await controller.start()
        await controller.handle_server_message({"serverContent": "garbage"})
        await controller.handle_server_message(bad_audio)
        await controller.handle_server_message(transcription_message("still AI listening"))
        await controller.stop()

    asyncio.run(run())

    assert controller.state.reconciler.word_count == 3


def test_stop_twice_releases_everything_once():
    transport = FakeTransport()
    controller, updates = make_controller(transport=transport)

    async def run():
        await controller.start()
        assert controller.state.status == LISTENING
        await controller.stop(by_user=True)
        await controller.stop()

    asyncio.run(run())

    assert transport.close_calls == 1
    assert controller.state.closed
    assert controller.state.playback.closed
    assert controller.state.status == NOT_CONNECTED
    assert controller.state.stopped_by_user
    assert types_of(updates).count("session") == 2


def test_late_events_after_stop_are_ignored():
    controller, _ = make_controller()

    async def run():
        await controller.start()
        await controller.stop()
        await controller.handle_server_message(transcription_message("AI AI AI"))

    asyncio.run(run())

    assert controller.state.reconciler.word_count == 0
    assert controller.state.matcher.mention_count == 0


def test_run_consumes_transport_then_stops():
    transport = FakeTransport(messages=[
        transcription_message("AI"),
        transcription_message("AI again"),
    ])
    controller, _ = make_controller(transport=transport)

    async def run():
        await controller.start()
        await controller.run()

    asyncio.run(run())

    assert controller.state.reconciler.word_count == 2
    assert controller.state.closed
    assert transport.close_calls == 1


def test_auth_failure_tears_down_before_raising():
    transport = FakeTransport(messages=[transcription_message("AI")], error=TransportAuthError("HTTP 403"))
    controller, updates = make_controller(transport=transport)

    async def run():
        await controller.start()
        await controller.run()

    with pytest.raises(TransportAuthError):
        asyncio.run(run())

    assert controller.state.closed
    assert controller.state.status == NOT_CONNECTED
    assert transport.close_calls == 1
    assert updates[-1]["type"] == "error"
    assert updates[-1]["kind"] == "credentials"


def test_transport_failure_tears_down_before_raising():
    transport = FakeTransport(error=TransportError("closed (1011)"))
    controller, updates = make_controller(transport=transport)

    async def run():
        await controller.start()
        await controller.run()

    with pytest.raises(TransportError):
        asyncio.run(run())

    assert controller.state.closed
    assert updates[-1]["kind"] == "transport"


def test_restart_clears_previous_session(fixed_now):
    controller, _ = make_controller(now=fixed_now)

    async def run():
        await controller.start()
        await controller.handle_server_message(transcription_message("AI here"))
        await controller.stop()
        await controller.start()
        await controller.handle_server_message(transcription_message("fresh"))
        await controller.stop()

    asyncio.run(run())

    assert [e.word for e in controller.state.reconciler.history] == ["fresh"]
    assert controller.state.matcher.mention_count == 0
    assert "fresh" in controller.export_text()


def test_reset_restores_keywords():
    controller, _ = make_controller()

    async def run():
        await controller.start()
        await controller.handle_server_message(transcription_message("AI AI"))
        await controller.stop()
        controller.keywords.add("extra")
        controller.reset()

    asyncio.run(run())

    assert controller.keywords.names() == ["AI"]
    assert controller.keywords.get("AI").count == 0
    assert controller.state.reconciler.word_count == 0


class RecordingSource:
    def __init__(self, error=None):
        self.error = error
        self.started = 0
        self.stopped = 0

    def start(self, handler, loop):
        if self.error is not None:
            raise self.error
        self.started += 1

    def stop(self):
        self.stopped += 1


def test_capture_source_follows_session():
    source = RecordingSource()
    controller, _ = make_controller()
    controller.source = source

    async def run():
        await controller.start()
        await controller.stop()
        await controller.stop()

    asyncio.run(run())

    assert source.started == 1
    assert source.stopped == 1


def test_capture_permission_error_is_fatal_to_start():
    source = RecordingSource(error=CapturePermissionError("microphone", "device busy"))
    controller, _ = make_controller()
    controller.source = source

    with pytest.raises(CapturePermissionError) as excinfo:
        asyncio.run(controller.start())

    assert "microphone" in str(excinfo.value)
    assert controller.state.status == NOT_CONNECTED
