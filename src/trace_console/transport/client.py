"""HTTP boundary for trace snapshots and run submission."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal, cast
from urllib import parse as urllib_parse

from pydantic import ConfigDict, Field, ValidationError
import requests

from trace_console.errors import TransportError
from trace_console.schema.base import TypedBaseModel
from trace_console.schema.trace import RunSnapshot


class RunSubmission(TypedBaseModel):
    """Request body accepted by the submission endpoint."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    customer_email: str = Field(..., min_length=3)
    subject: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    order_id: str | None = None
    mode: Literal["orchestrated", "autonomous"] = "orchestrated"


class SubmittedRun(TypedBaseModel):
    run_id: str = Field(..., alias="ticket_id")
    status: str = "processing"
    estimated_resolution: str | None = None
    agent_assigned: str | None = None


class TraceClient:
    """Blocking client over ``requests``; use the ``*_async`` variants from a loop."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        session: Any | None = None,
        logger: Any | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("Request timeout must be positive")
        self.base_url = self._validate_base_url(base_url)
        self.timeout = timeout
        self._session = session
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _validate_base_url(base_url: str) -> str:
        parsed = urllib_parse.urlparse(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"API base URL must be http(s) with a host: {base_url!r}")
        return base_url.rstrip("/")

    def _run_url(self, run_id: str, leaf: str) -> str:
        quoted = urllib_parse.quote(run_id, safe="")
        return f"{self.base_url}/tickets/{quoted}/{leaf}"

    def trace_url(self, run_id: str) -> str:
        return self._run_url(run_id, "trace")

    def stream_url(self, run_id: str) -> str:
        return self._run_url(run_id, "stream")

    @property
    def submit_url(self) -> str:
        return f"{self.base_url}/tickets/submit"

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        client = self._session or requests
        try:
            response = client.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as exc:
            raise TransportError(f"{method} {url} timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc!s}") from exc
        status_code = getattr(response, "status_code", 200)
        if status_code >= 400:
            raise TransportError(
                f"{method} {url} returned status {status_code}",
                status_code=status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                f"{method} {url} returned a body that is not JSON",
                status_code=status_code,
            ) from exc

    def fetch_snapshot(self, run_id: str) -> RunSnapshot:
        url = self.trace_url(run_id)
        payload = self._request("GET", url, headers={"Accept": "application/json"})
        if not isinstance(payload, dict):
            raise TransportError(f"Snapshot for {run_id} is not a JSON object")
        payload.setdefault("ticket_id", run_id)
        try:
            return RunSnapshot.model_validate(payload)
        except ValidationError as exc:
            raise TransportError(
                f"Snapshot for {run_id} failed validation: {exc.error_count()} error(s)"
            ) from exc

    def submit_run(self, submission: RunSubmission) -> SubmittedRun:
        payload = self._request(
            "POST",
            self.submit_url,
            json=submission.model_dump(mode="json", exclude_none=True),
        )
        try:
            submitted = SubmittedRun.model_validate(payload)
        except ValidationError as exc:
            raise TransportError(
                "Submission response failed validation: "
                f"{exc.error_count()} error(s)"
            ) from exc
        self.logger.info(
            "Submitted run %s (%s)", submitted.run_id, submitted.status
        )
        return submitted

    async def fetch_snapshot_async(self, run_id: str) -> RunSnapshot:
        return cast(RunSnapshot, await asyncio.to_thread(self.fetch_snapshot, run_id))

    async def submit_run_async(self, submission: RunSubmission) -> SubmittedRun:
        return cast(SubmittedRun, await asyncio.to_thread(self.submit_run, submission))

    def close(self) -> None:
        if self._session is not None:
            self._session.close()


__all__ = ["RunSubmission", "SubmittedRun", "TraceClient"]
