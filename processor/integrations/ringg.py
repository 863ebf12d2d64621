"""Ringg AI integration for practice-call details, transcripts and recordings.

Every read goes through the single call-details endpoint so the transcript and
recording come from one consistent snapshot.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import structlog

from processor.config import settings

logger = structlog.get_logger()

CALL_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:\-]{1,128}$")


@dataclass
class CallSnapshot:
    """Point-in-time view of a provider call."""

    call_id: str
    status: Optional[str] = None
    transcript: Optional[str] = None
    recording_url: Optional[str] = None
    duration: Optional[int] = None  # Seconds
    cost: Optional[float] = None
    participant_name: Optional[str] = None
    agent_name: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @property
    def has_transcript(self) -> bool:
        return bool(self.transcript and self.transcript.strip())

    @property
    def has_recording(self) -> bool:
        return bool(self.recording_url)

    @property
    def is_ready(self) -> bool:
        """Both transcript and recording are available."""
        return self.has_transcript and self.has_recording

    def to_record_fields(self) -> Dict[str, Any]:
        """Map available values onto practice_calls columns.

        Absent values are left out so they never overwrite stored data.
        """
        fields = {
            "transcript": self.transcript if self.has_transcript else None,
            "audio_recording_url": self.recording_url,
            "call_duration": self.duration,
            "call_cost": self.cost,
            "call_status": self.status,
            "participant_name": self.participant_name,
        }
        return {key: value for key, value in fields.items() if value is not None}


@dataclass
class CallHistoryPage:
    """One page of provider call history."""

    calls: List[CallSnapshot] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 0


class RinggClient:
    """Async client for the Ringg AI calling API.

    The underlying httpx client is safe to share between concurrent polls.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.RINGG_API_KEY
        self.base_url = (base_url or settings.RINGG_API_BASE).rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.RINGG_TIMEOUT,
            headers={
                "X-API-KEY": self.api_key or "",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "RinggClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def fetch_call_details(self, call_id: str) -> CallSnapshot:
        """Fetch the current snapshot of a call.

        Args:
            call_id: Provider call identifier

        Returns:
            CallSnapshot with whatever fields the provider has so far

        Raises:
            RinggNotFoundError: Call ID is malformed or unknown (terminal)
            RinggError: Network failure or unexpected status (retryable)
        """
        if not isinstance(call_id, str) or not CALL_ID_PATTERN.match(call_id):
            logger.info("Rejecting malformed Ringg call id", call_id=call_id)
            raise RinggNotFoundError(f"Malformed call id: {call_id!r}")

        logger.debug("Fetching Ringg call details", call_id=call_id)

        try:
            response = await self.client.get("/calling/call-details", params={"id": call_id})
        except httpx.HTTPError as e:
            logger.warning("Ringg request failed", call_id=call_id, error=str(e))
            raise RinggError(f"Request for call {call_id} failed: {e}") from e

        if response.status_code == 404:
            logger.info("Call not found in Ringg AI", call_id=call_id)
            raise RinggNotFoundError(f"Call {call_id} not found")

        if not response.is_success:
            logger.warning(
                "Ringg API error",
                call_id=call_id,
                status_code=response.status_code,
                response=response.text[:500],
            )
            raise RinggError(
                f"Ringg AI API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RinggError(f"Invalid JSON for call {call_id}") from e

        # Some responses wrap the payload in a data envelope
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]

        if not isinstance(data, dict):
            logger.warning("Unexpected Ringg payload", call_id=call_id, payload_type=type(data).__name__)
            raise RinggError(f"Unexpected payload for call {call_id}: {type(data).__name__}")

        return parse_call_details(data, call_id)

    async def fetch_call_history(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        agent_id: Optional[str] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> CallHistoryPage:
        """Fetch call history with optional filters."""
        params = {
            "startDate": start_date,
            "endDate": end_date,
            "agentId": agent_id,
            "page": page,
            "pageSize": page_size,
        }
        params = {key: value for key, value in params.items() if value is not None}

        try:
            response = await self.client.get("/calling/history", params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Ringg history request failed", status_code=e.response.status_code)
            raise RinggError(
                f"Ringg AI API error: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("Ringg history request failed", error=str(e))
            raise RinggError(f"History request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise RinggError("Invalid JSON in call history") from e

        if not isinstance(data, dict):
            raise RinggError(f"Unexpected call history payload: {type(data).__name__}")

        calls = [
            parse_call_details(item, str(item.get("id", "")))
            for item in data.get("calls") or []
            if isinstance(item, dict)
        ]

        logger.info("Fetched Ringg call history", count=len(calls))
        return CallHistoryPage(
            calls=calls,
            total_count=data.get("totalCount", len(calls)),
            page=data.get("page", page or 1),
            page_size=data.get("pageSize", page_size or len(calls)),
        )

    async def test_connection(self) -> bool:
        """Check that the API is reachable with the configured key."""
        try:
            response = await self.client.get("/calling/history", params={"limit": 1})
        except httpx.HTTPError as e:
            logger.error("Ringg connection test failed", error=str(e))
            return False

        logger.info("Ringg connection test", success=response.is_success)
        return response.is_success


def parse_call_details(data: Dict[str, Any], call_id: str) -> CallSnapshot:
    """Build a snapshot from a call-details payload, tolerating missing keys."""
    participant = data.get("participant") or {}
    agent = data.get("agent") or {}

    recording_url = (
        data.get("recordingUrl")
        or data.get("recording_url")
        or data.get("audioUrl")
        or data.get("audio_url")
    )

    return CallSnapshot(
        call_id=str(data.get("id") or call_id),
        status=data.get("status"),
        transcript=_flatten_transcript(data.get("transcript")),
        recording_url=recording_url or None,
        duration=_to_int(data.get("duration")),
        cost=_to_float(data.get("cost")),
        participant_name=participant.get("name") if isinstance(participant, dict) else None,
        agent_name=agent.get("name") if isinstance(agent, dict) else None,
        start_time=data.get("startTime"),
        end_time=data.get("endTime"),
    )


def _flatten_transcript(value: Any) -> Optional[str]:
    """Transcripts arrive as text or as a list of speaker turns."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, list):
        lines = []
        for turn in value:
            if isinstance(turn, dict):
                speaker = turn.get("speaker") or turn.get("role") or "Unknown"
                text = turn.get("text") or turn.get("content") or ""
                if text:
                    lines.append(f"{speaker}: {text}")
            elif isinstance(turn, str) and turn:
                lines.append(turn)
        return "\n".join(lines) or None
    return None


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    return int(round(number)) if number is not None else None


def _to_float(value: Any) -> Optional[float]:
    """Finite float or None. Infinity and NaN count as missing."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


class RinggError(Exception):
    """Raised when a Ringg AI call fails in a way that may succeed on retry."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RinggNotFoundError(RinggError):
    """Raised when the provider does not know the call. Not retryable."""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)
