#!/usr/bin/env python3
"""
Synthetic Test Client - Tests the backend without requiring a microphone.

Exercises the keyword commands on the session WebSocket, then starts a
session and streams synthetic audio frames (silence, then a tone) to check
that the backend buffers and forwards them. Transcripts only appear when a
real transcription service is configured (KEYWATCH_API_KEY).
"""
import asyncio
import websockets
import numpy as np
import json
import sys
import logging

# Setup basic logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# Audio configuration (must match server settings)
SAMPLE_RATE = 16000  # Hz
CHUNK_SIZE = 4096  # samples per frame

# Server configuration
SERVER_URL = "ws://localhost:8000/ws/session"

# Test parameters
SILENCE_FRAMES = 8
TONE_FRAMES = 16
PAUSE_MS = 50  # ms to pause between frames


def generate_silence_frame(chunk_size):
    """Generate a frame of silence."""
    return np.zeros(chunk_size, dtype="<i2")


def generate_tone_frame(chunk_size, index, frequency=440.0, amplitude=6000):
    """Generate a frame of a continuous sine tone."""
    t = (np.arange(chunk_size) + index * chunk_size) / SAMPLE_RATE
    return (amplitude * np.sin(2 * np.pi * frequency * t)).astype("<i2")


async def request(websocket, command: dict, expect: str, timeout: float = 2.0) -> dict:
    """Send a control command and wait for a reply of the given type."""
    await websocket.send(json.dumps(command))
    while True:
        data = json.loads(await asyncio.wait_for(websocket.recv(), timeout=timeout))
        if data["type"] in (expect, "error"):
            return data


async def drain(websocket, updates: list) -> None:
    """Collect any pending updates without blocking."""
    while True:
        try:
            message = await asyncio.wait_for(websocket.recv(), timeout=0.01)
        except asyncio.TimeoutError:
            return
        updates.append(json.loads(message))


def check(label: str, ok: bool) -> bool:
    print(f"  {'✓' if ok else '✗'} {label}")
    return ok


async def test_backend():
    """Main test function."""
    print("=" * 70)
    print("Keywatch Backend - Synthetic Test Client")
    print("=" * 70)
    print(f"Sample Rate: {SAMPLE_RATE} Hz")
    print(f"Chunk Size: {CHUNK_SIZE} samples")
    print(f"Server: {SERVER_URL}")
    print("=" * 70 + "\n")

    results = []
    try:
        async with websockets.connect(SERVER_URL, ping_interval=None) as websocket:
            hello = json.loads(await websocket.recv())
            session_id = hello["session_id"]
            print(f"✓ Connected to server, session {session_id}\n")

            print("Keyword commands:")
            reply = await request(websocket, {"type": "set_keywords", "text": "TRUMP:8, 5+ BIDEN, AI+++"}, "keywords")
            names = [(k["name"], k["target"]) for k in reply.get("keywords", [])]
            results.append(check(f"set_keywords -> {names}", names == [("TRUMP", 8), ("BIDEN", 5), ("AI", 3)]))

            reply = await request(websocket, {"type": "add_keyword", "spec": "ai"}, "keywords")
            results.append(check("duplicate keyword rejected", reply["type"] == "error"))

            reply = await request(websocket, {"type": "edit_keyword", "keyword": "BIDEN", "spec": "HARRIS:2"}, "keywords")
            names = [k["name"] for k in reply.get("keywords", [])]
            results.append(check(f"edit_keyword -> {names}", names == ["TRUMP", "HARRIS", "AI"]))

            print("\nSession:")
            reply = await request(websocket, {"type": "start"}, "session", timeout=15.0)
            if reply["type"] == "error":
                print(f"  ! Session did not start ({reply.get('kind')}): {reply.get('message')}")
                print("    Set KEYWATCH_API_KEY on the server to test streaming")
            else:
                updates = []
                frames = [generate_silence_frame(CHUNK_SIZE) for _ in range(SILENCE_FRAMES)]
                frames += [generate_tone_frame(CHUNK_SIZE, i) for i in range(TONE_FRAMES)]
                for frame in frames:
                    await websocket.send(frame.tobytes())
                    await drain(websocket, updates)
                    await asyncio.sleep(PAUSE_MS / 1000.0)

                reply = await request(websocket, {"type": "stop"}, "session")
                results.append(check(f"streamed {len(frames)} frames, status {reply.get('status')}", True))
                print(f"  Buffer size: {reply.get('buffer_size_samples')} samples, gain: {reply.get('gain')}")
                kinds = sorted({u["type"] for u in updates})
                print(f"  Update types received: {kinds}")

            print("\n" + "=" * 70)
            print(f"{sum(results)}/{len(results)} checks passed")
            print("=" * 70)

    except ConnectionRefusedError:
        print("\n✗ ERROR: Could not connect to server at", SERVER_URL)
        print("  Make sure the backend is running:")
        print("    cd backend && python -m uvicorn keywatch.main:app --reload")
        sys.exit(1)
    except (asyncio.TimeoutError, websockets.exceptions.ConnectionClosed) as e:
        print(f"\n✗ ERROR: {e!r}")
        sys.exit(1)

    if not all(results):
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(test_backend())
    except KeyboardInterrupt:
        print("\n\nExiting...")
