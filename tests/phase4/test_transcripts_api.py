"""Integration tests for the transcript endpoints, including the SSE watch stream."""

import json

import pytest

from tests.fixtures import (
    SESSION_ID,
    WORKING_DIR,
    make_assistant_record,
    make_user_record,
    scenario_b_records,
    write_transcript,
)


@pytest.fixture
def transcript(projects_dir):
    return write_transcript(
        projects_dir / "-work-project" / f"{SESSION_ID}.jsonl", scenario_b_records(),
    )


def parse_sse(body: str) -> list[tuple[str, dict]]:
    frames = []
    for chunk in body.strip().split("\n\n"):
        lines = chunk.split("\n")
        event = lines[0].removeprefix("event: ")
        data = json.loads(lines[1].removeprefix("data: "))
        frames.append((event, data))
    return frames


class TestLocate:
    async def test_locate_with_working_dir(self, client, transcript):
        resp = await client.get(f"/api/transcripts/{SESSION_ID}", params={"working_dir": WORKING_DIR})
        assert resp.status_code == 200
        data = resp.json()
        assert data["path"] == str(transcript)
        assert data["size"] == transcript.stat().st_size

    async def test_locate_by_search(self, client, transcript):
        resp = await client.get(f"/api/transcripts/{SESSION_ID}")
        assert resp.status_code == 200
        assert resp.json()["working_dir"] == WORKING_DIR

    async def test_unknown_session_is_404(self, client):
        resp = await client.get("/api/transcripts/does-not-exist/events")
        assert resp.status_code == 404


class TestDerivedViews:
    async def test_events(self, client, transcript):
        resp = await client.get(
            f"/api/transcripts/{SESSION_ID}/events", params={"working_dir": WORKING_DIR},
        )
        assert resp.status_code == 200
        assert [e["type"] for e in resp.json()] == [
            "init", "tool_start", "tool_complete", "generating", "text", "turn_end",
        ]

    async def test_events_for_missing_file_with_working_dir_is_empty(self, client):
        resp = await client.get(
            "/api/transcripts/not-started/events", params={"working_dir": WORKING_DIR},
        )
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_turns(self, client, transcript):
        resp = await client.get(f"/api/transcripts/{SESSION_ID}/turns")
        assert resp.status_code == 200
        turns = resp.json()
        assert len(turns) == 1
        assert turns[0]["user_text"] == "read the file"
        assert turns[0]["is_complete"] is True
        segment = turns[0]["segments"][0]
        assert segment["text"] == "done"
        assert [e["type"] for e in segment["activity"]] == ["tool_start", "tool_complete"]

    async def test_activity(self, client, transcript):
        resp = await client.get(f"/api/transcripts/{SESSION_ID}/activity")
        assert resp.status_code == 200
        assert [e["type"] for e in resp.json()] == ["tool_start", "tool_complete", "generating"]


class TestWatch:
    async def test_watch_streams_until_idle(self, client, transcript):
        resp = await client.get(f"/api/transcripts/{SESSION_ID}/watch")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")

        frames = parse_sse(resp.text)
        assert [name for name, _ in frames] == [
            "init", "tool_start", "tool_complete", "generating", "text", "turn_end", "done",
        ]
        assert frames[0][1]["session_id"] == SESSION_ID
        assert frames[2][1]["duration_ms"] == 1500

    async def test_watch_from_offset_skips_init(self, client, projects_dir):
        path = projects_dir / "-work-project" / "s2.jsonl"
        write_transcript(path, [make_user_record("hi", seconds=1, session_id="s2")])
        offset = path.stat().st_size
        with path.open("a") as f:
            f.write(json.dumps(make_assistant_record(
                "hello", seconds=2, stop_reason="end_turn", session_id="s2",
            )) + "\n")

        resp = await client.get(
            "/api/transcripts/s2/watch",
            params={"working_dir": WORKING_DIR, "from_offset": offset},
        )
        frames = parse_sse(resp.text)
        assert [name for name, _ in frames] == ["generating", "text", "done"]

    async def test_watch_unknown_session_is_404(self, client):
        resp = await client.get("/api/transcripts/nope/watch")
        assert resp.status_code == 404
