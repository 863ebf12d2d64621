"""Tests for the Ringg AI client."""

import asyncio

import httpx
import pytest

from conftest import call_details
from processor.integrations.ringg import (
    RinggError,
    RinggNotFoundError,
    parse_call_details,
)


def test_fetch_call_details_parses_snapshot(ringg_client):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["id"] = request.url.params.get("id")
        seen["api_key"] = request.headers.get("X-API-KEY")
        return httpx.Response(
            200,
            json=call_details(
                "abc-123",
                transcript="Agent: Hello\nParent: Hi",
                recordingUrl="https://cdn.test/abc.mp3",
            ),
        )

    client = ringg_client(handler)
    snapshot = asyncio.run(client.fetch_call_details("abc-123"))

    assert seen == {
        "path": "/ca/api/v0/calling/call-details",
        "id": "abc-123",
        "api_key": "test-key",
    }
    assert snapshot.call_id == "abc-123"
    assert snapshot.transcript == "Agent: Hello\nParent: Hi"
    assert snapshot.recording_url == "https://cdn.test/abc.mp3"
    assert snapshot.duration == 95
    assert snapshot.cost == pytest.approx(0.42)
    assert snapshot.participant_name == "Priya"
    assert snapshot.is_ready


def test_fetch_call_details_unwraps_data_envelope(ringg_client):
    def handler(request):
        return httpx.Response(200, json={"data": call_details("c1", audio_url="https://cdn.test/c1.wav")})

    snapshot = asyncio.run(ringg_client(handler).fetch_call_details("c1"))

    assert snapshot.recording_url == "https://cdn.test/c1.wav"
    assert not snapshot.has_transcript
    assert not snapshot.is_ready


def test_not_found_raises_terminal_error(ringg_client):
    def handler(request):
        return httpx.Response(404, json={"message": "not found"})

    with pytest.raises(RinggNotFoundError):
        asyncio.run(ringg_client(handler).fetch_call_details("missing"))


def test_malformed_call_id_rejected_without_request(ringg_client):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=call_details())

    client = ringg_client(handler)
    for bad_id in ["", "has space", "x" * 129, "semi;colon"]:
        with pytest.raises(RinggNotFoundError):
            asyncio.run(client.fetch_call_details(bad_id))

    assert requests == []


def test_server_error_is_retryable(ringg_client):
    def handler(request):
        return httpx.Response(503, text="unavailable")

    with pytest.raises(RinggError) as exc_info:
        asyncio.run(ringg_client(handler).fetch_call_details("c1"))

    assert not isinstance(exc_info.value, RinggNotFoundError)
    assert exc_info.value.status_code == 503


def test_network_failure_is_retryable(ringg_client):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RinggError) as exc_info:
        asyncio.run(ringg_client(handler).fetch_call_details("c1"))

    assert not isinstance(exc_info.value, RinggNotFoundError)


def test_invalid_json_is_retryable(ringg_client):
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(RinggError):
        asyncio.run(ringg_client(handler).fetch_call_details("c1"))


@pytest.mark.parametrize("body", [["unexpected"], "unexpected", 42])
def test_non_object_payload_is_retryable(ringg_client, body):
    def handler(request):
        return httpx.Response(200, json=body)

    with pytest.raises(RinggError) as exc_info:
        asyncio.run(ringg_client(handler).fetch_call_details("c1"))

    assert not isinstance(exc_info.value, RinggNotFoundError)


def test_non_finite_numbers_are_treated_as_missing(ringg_client):
    def handler(request):
        return httpx.Response(
            200,
            text='{"id": "c1", "status": "completed", "duration": Infinity, "cost": NaN}',
            headers={"content-type": "application/json"},
        )

    snapshot = asyncio.run(ringg_client(handler).fetch_call_details("c1"))

    assert snapshot.status == "completed"
    assert snapshot.duration is None
    assert snapshot.cost is None


def test_call_history_rejects_non_object_payload(ringg_client):
    def handler(request):
        return httpx.Response(200, json=[call_details()])

    with pytest.raises(RinggError):
        asyncio.run(ringg_client(handler).fetch_call_history())


def test_transcript_turns_are_flattened():
    snapshot = parse_call_details(
        {
            "transcript": [
                {"speaker": "Agent", "text": "Thank you for calling."},
                {"role": "Parent", "content": "My son is behind."},
                {"speaker": "Agent", "text": ""},
            ]
        },
        "c9",
    )

    assert snapshot.call_id == "c9"
    assert snapshot.transcript == "Agent: Thank you for calling.\nParent: My son is behind."


def test_record_fields_skip_absent_values():
    snapshot = parse_call_details({"status": "in_progress", "transcript": "   "}, "c2")

    assert snapshot.to_record_fields() == {"call_status": "in_progress"}


def test_fetch_call_history(ringg_client):
    def handler(request):
        assert request.url.path.endswith("/calling/history")
        assert request.url.params.get("agentId") == "agent-7"
        return httpx.Response(
            200,
            json={
                "calls": [call_details("h1"), call_details("h2", recordingUrl="https://cdn.test/h2.mp3")],
                "totalCount": 12,
                "page": 2,
                "pageSize": 2,
            },
        )

    page = asyncio.run(ringg_client(handler).fetch_call_history(agent_id="agent-7", page=2, page_size=2))

    assert [c.call_id for c in page.calls] == ["h1", "h2"]
    assert page.calls[1].has_recording
    assert page.total_count == 12
    assert page.page == 2


def test_connection_check(ringg_client):
    ok = ringg_client(lambda request: httpx.Response(200, json={"calls": []}))
    denied = ringg_client(lambda request: httpx.Response(401, json={"message": "bad key"}))

    assert asyncio.run(ok.test_connection()) is True
    assert asyncio.run(denied.test_connection()) is False
