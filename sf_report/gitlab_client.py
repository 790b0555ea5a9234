"""GitLab REST client for artifact uploads and issue creation."""

from __future__ import annotations

import json
import logging
import mimetypes
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib import error, parse, request

from sf_common.errors import ReportingError

logger = logging.getLogger(__name__)


def _base_url(host: str) -> str:
    host = host.strip().rstrip("/")
    if "://" not in host:
        return f"https://{host}"
    parsed = parse.urlparse(host)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"GitLab host must be a hostname or http(s) URL, got: {host}")
    return host


def encode_multipart(
    field_name: str, filename: str, data: bytes
) -> tuple[bytes, str]:
    """Encode a single file field as multipart/form-data.

    Returns the body and the matching Content-Type header value.
    """
    boundary = f"----sf-{uuid.uuid4().hex}"
    content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{field_name}"; filename="{filename}"\r\n'
        f"Content-Type: {content_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + data + tail, f"multipart/form-data; boundary={boundary}"


@dataclass
class GitlabClient:
    """Lightweight GitLab API client with retry support."""

    host: str
    token: str = field(repr=False)
    project_id: int
    timeout_seconds: float = 30.0
    max_retries: int = 3
    backoff_base: float = 0.5
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        self.base_url = _base_url(self.host)

    @property
    def project_url(self) -> str:
        return f"{self.base_url}/api/v4/projects/{self.project_id}"

    def upload_artifact(self, data: bytes, filename: str) -> str:
        """Upload a file to the project and return its markdown-relative URL."""
        body, content_type = encode_multipart("file", filename, data)
        _, payload = self._request(
            "POST",
            "/uploads",
            body=body,
            content_type=content_type,
            expected_statuses={200, 201},
        )
        url = payload.get("url") if isinstance(payload, dict) else None
        if not url:
            raise ReportingError(
                "GitLab upload response has no url",
                context={"filename": filename, "response": payload},
            )
        logger.debug("Uploaded %s to %s", filename, url)
        return str(url)

    def create_issue(self, title: str, description: str) -> str:
        """Create an issue and return its web URL."""
        body = json.dumps({"title": title, "description": description}).encode("utf-8")
        _, payload = self._request(
            "POST",
            "/issues",
            body=body,
            content_type="application/json",
            expected_statuses={200, 201},
        )
        url = payload.get("web_url") if isinstance(payload, dict) else None
        if not url:
            raise ReportingError(
                "GitLab issue response has no web_url",
                context={"title": title, "response": payload},
            )
        return str(url)

    def _request(
        self,
        method: str,
        path: str,
        body: bytes | None = None,
        content_type: str | None = None,
        expected_statuses: set[int] | None = None,
    ) -> tuple[int, Any]:
        expected = expected_statuses or {200}
        url = f"{self.project_url}{path}"
        headers = {"Accept": "application/json", "PRIVATE-TOKEN": self.token}
        if content_type:
            headers["Content-Type"] = content_type

        for attempt in range(self.max_retries + 1):
            try:
                req = request.Request(url, data=body, headers=headers, method=method)
                with request.urlopen(  # nosec B310
                    req, timeout=self.timeout_seconds
                ) as resp:
                    status = resp.status
                    text = resp.read().decode("utf-8")
                parsed = self._parse_json(text)
                if status in expected:
                    return status, parsed
                if status >= 500 and attempt < self.max_retries:
                    self._sleep_backoff(attempt)
                    continue
                raise ReportingError(
                    f"GitLab API error {status}: {text}",
                    context={"url": url, "status": status},
                )
            except error.HTTPError as exc:
                status = exc.code
                text = exc.read().decode("utf-8") if exc.fp else ""
                parsed = self._parse_json(text)
                if status in expected:
                    return status, parsed
                if status >= 500 and attempt < self.max_retries:
                    self._sleep_backoff(attempt)
                    continue
                raise ReportingError(
                    f"GitLab API error {status}: {text}",
                    context={"url": url, "status": status},
                    cause=exc,
                ) from exc
            except error.URLError as exc:
                if attempt < self.max_retries:
                    self._sleep_backoff(attempt)
                    continue
                raise ReportingError(
                    f"GitLab API request failed: {exc.reason}",
                    context={"url": url},
                    cause=exc,
                ) from exc
            except (TimeoutError, ConnectionError) as exc:
                if attempt < self.max_retries:
                    self._sleep_backoff(attempt)
                    continue
                raise ReportingError(
                    f"GitLab API request failed: {exc}",
                    context={"url": url},
                    cause=exc,
                ) from exc
        raise ReportingError("GitLab API request failed after retries.", context={"url": url})

    def _sleep_backoff(self, attempt: int) -> None:
        delay = self.backoff_base * (self.backoff_factor**attempt)
        logger.debug("Retrying GitLab request in %.2fs", delay)
        time.sleep(delay)

    @staticmethod
    def _parse_json(text: str) -> Mapping[str, Any] | list | None:
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return None
