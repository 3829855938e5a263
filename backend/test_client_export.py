#!/usr/bin/env python3
"""
Test client for the session REST endpoints.

Checks server health, then reads a live session's keywords, detections and
correlation, and downloads its transcript export.

Usage:
    python test_client_export.py ws-1a2b3c4d
"""
import requests
import sys
import re

# Configuration
SERVER_URL = "http://localhost:8000"


def check_health():
    """Check the server is up."""
    try:
        health = requests.get(f"{SERVER_URL}/health", timeout=5)
    except requests.exceptions.ConnectionError:
        print(f"✗ Could not connect to server at {SERVER_URL}")
        print(f"  Make sure backend is running:")
        print(f"  cd backend && python -m uvicorn keywatch.main:app --reload")
        return False

    if health.status_code != 200:
        print(f"✗ Server returned status {health.status_code}")
        return False

    data = health.json()
    print(f"✓ Server is healthy")
    print(f"  Status: {data.get('status')}")
    print(f"  Version: {data.get('version')}")
    print(f"  Live sessions: {data.get('sessions')}")
    return True


def get_json(path):
    response = requests.get(f"{SERVER_URL}{path}", timeout=5)
    if response.status_code != 200:
        print(f"✗ GET {path}: HTTP {response.status_code} {response.json().get('detail')}")
        return None
    return response.json()


def show_session(session_id):
    """Print keyword progress, recent detections and correlation for a session."""
    keywords = get_json(f"/sessions/{session_id}/keywords")
    if keywords is None:
        return False
    print("\nKeywords:")
    for keyword in keywords["keywords"]:
        print(f"  {keyword['name']:<20} {keyword['count']}/{keyword['target']}")

    detections = get_json(f"/sessions/{session_id}/detections")
    if detections is not None:
        print(f"\nDetections ({detections['mention_count']} total, newest first):")
        for detection in detections["detections"][:10]:
            line = f"  {detection['session_time_seconds']:7.1f}s  {detection['keyword']:<15} {detection['speaker']}"
            counterpart = detection.get("counterpart")
            if counterpart:
                line += f"  ({counterpart['keyword']} {counterpart['offset_seconds']:+.1f}s)"
            print(line)

    correlation = get_json(f"/sessions/{session_id}/correlation")
    if correlation is not None:
        print(f"\nDominant keyword: {correlation['dominant_keyword'] or '-'}")
        for tension in correlation["tensions"]:
            print(f"  Tension: {tension['keyword1']} <-> {tension['keyword2']} ({tension['occurrences']}x)")
    return True


def download_export(session_id):
    """Save the transcript export to the file name the server suggests."""
    response = requests.get(f"{SERVER_URL}/sessions/{session_id}/export", timeout=10)
    if response.status_code == 409:
        print("\n! No transcript to export yet")
        return True
    if response.status_code != 200:
        print(f"\n✗ Export failed: HTTP {response.status_code}")
        return False

    match = re.search(r'filename="([^"]+)"', response.headers.get("content-disposition", ""))
    filename = match.group(1) if match else f"transcript-{session_id}.txt"
    with open(filename, "w", encoding="utf-8") as f:
        f.write(response.text)
    print(f"\n✓ Saved transcript export to: {filename}")
    return True


def main():
    """Run the REST checks."""
    print("=" * 70)
    print("Keywatch Backend - REST Test Client")
    print("=" * 70)
    print(f"Server: {SERVER_URL}")
    print("=" * 70)

    if not check_health():
        return False
    if len(sys.argv) < 2:
        print("\nPass a session id (printed by test_client.py) to inspect a session")
        return True

    session_id = sys.argv[1]
    try:
        return show_session(session_id) and download_export(session_id)
    except requests.exceptions.Timeout:
        print(f"\n✗ ERROR: Request timeout")
        return False


if __name__ == "__main__":
    sys.exit(0 if main() else 1)
