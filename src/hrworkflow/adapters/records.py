"""Candidate record service clients."""

from __future__ import annotations

import json
import threading
from typing import Any, Iterable
from urllib import error, parse, request

import structlog

from ..errors import ExternalSyncError
from ..schemas import CandidateRecord


class InMemoryCandidateRecordService:
    """Candidate records held in process; status writes are kept for inspection."""

    def __init__(self, records: Iterable[CandidateRecord | dict[str, Any]] | None = None):
        self._records: dict[str, CandidateRecord] = {}
        self._lock = threading.Lock()
        self.status_updates: list[tuple[str, str]] = []
        for record in records or []:
            self.add(record)

    def add(self, record: CandidateRecord | dict[str, Any]) -> CandidateRecord:
        parsed = record if isinstance(record, CandidateRecord) else CandidateRecord.model_validate(record)
        with self._lock:
            self._records[parsed.candidate_id] = parsed
        return parsed

    def fetch(self, candidate_id: str) -> CandidateRecord | None:
        with self._lock:
            return self._records.get(candidate_id)

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def update_status(self, candidate_id: str, status_code: str) -> None:
        with self._lock:
            self.status_updates.append((candidate_id, status_code))
            record = self._records.get(candidate_id)
            if record is not None and status_code in {"NEW", "IN_PROCESS", "HIRED", "REJECTED"}:
                self._records[candidate_id] = record.model_copy(
                    update={"current_status": status_code}
                )


class HTTPCandidateRecordClient:
    """JSON-over-HTTP client for a remote candidate record service."""

    def __init__(self, endpoint: str, api_key: str | None = None, *, timeout: float = 10.0):
        self._endpoint = endpoint.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._logger = structlog.get_logger(__name__)

    def fetch(self, candidate_id: str) -> CandidateRecord | None:
        body = self._request("GET", f"/candidates/{parse.quote(candidate_id, safe='')}", allow_missing=True)
        if body is None:
            return None
        payload = body.get("candidate", body)
        payload.setdefault("candidate_id", str(payload.get("id", candidate_id)))
        return CandidateRecord.model_validate(payload)

    def list_ids(self) -> list[str]:
        body = self._request("GET", "/candidates") or {}
        items = body.get("candidates", []) if isinstance(body, dict) else body
        return [str(item.get("candidate_id", item.get("id"))) for item in items]

    def update_status(self, candidate_id: str, status_code: str) -> None:
        self._request(
            "PATCH",
            f"/candidates/{parse.quote(candidate_id, safe='')}/status",
            payload={"status": status_code},
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> Any:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8") if payload is not None else None
        headers = {"Accept": "application/json"}
        if data is not None:
            headers["Content-Type"] = "application/json"
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        req = request.Request(self._endpoint + path, data=data, headers=headers, method=method)
        try:
            with request.urlopen(req, timeout=self._timeout) as resp:
                raw = resp.read().decode("utf-8")
        except error.HTTPError as exc:
            if allow_missing and exc.code == 404:
                return None
            self._logger.warning("records.request_failed", method=method, path=path, status=exc.code)
            raise ExternalSyncError(f"{method} {path} failed with HTTP {exc.code}") from exc
        except (error.URLError, TimeoutError) as exc:
            self._logger.warning("records.request_failed", method=method, path=path, error=str(exc))
            raise ExternalSyncError(f"{method} {path} failed: {exc}") from exc
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ExternalSyncError(f"{method} {path} returned invalid JSON") from exc
