"""Network transports that the download cache can wrap."""

from __future__ import annotations

import io
import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import timezone
from email.utils import parsedate_to_datetime
from http.client import IncompleteRead
from typing import BinaryIO, Protocol

from requests import Response, Session
from requests.exceptions import (
    ChunkedEncodingError,
    ContentDecodingError,
    HTTPError,
    RequestException,
)
from urllib3.exceptions import DecodeError, ProtocolError

from .copier import ByteCopier

DEFAULT_HEADERS = {
    "User-Agent": "fetchcache/0.1",
    "Accept": "*/*",
}
DEFAULT_TIMEOUT = (15.0, 90.0)
RETRIABLE_STATUSES = {408, 425, 429, 500, 502, 503, 504}
NOT_FOUND_STATUSES = {404, 410}
AUTH_FAILED_STATUSES = {401, 403}
STREAM_RETRY_EXCEPTIONS = (
    ChunkedEncodingError,
    ContentDecodingError,
    DecodeError,
    ProtocolError,
    IncompleteRead,
)

logger = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """Raised when a resource cannot be fetched."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResourceNotFound(TransportError):
    """Raised when the server reports that a resource does not exist."""


class AuthenticationFailed(TransportError):
    """Raised when the server rejects the request's credentials."""


class DownloadCancelled(TransportError):
    """Raised internally when a :class:`Cancellation` fires mid-transfer."""


@dataclass(slots=True)
class DownloadStatus:
    """Outcome of a download, including the resource's modification time."""

    ok: bool
    last_modified: float | None = None
    message: str = ""
    status_code: int | None = None
    error: BaseException | None = None

    @classmethod
    def success(
        cls,
        *,
        last_modified: float | None = None,
        message: str = "OK",
        status_code: int | None = None,
    ) -> "DownloadStatus":
        return cls(True, last_modified=last_modified, message=message, status_code=status_code)

    @classmethod
    def failure(
        cls,
        message: str,
        *,
        status_code: int | None = None,
        error: BaseException | None = None,
    ) -> "DownloadStatus":
        return cls(False, message=message, status_code=status_code, error=error)


class Cancellation:
    """Thread-safe token used to abort a running transfer."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class Transport(Protocol):
    def download(
        self,
        uri: str,
        target: BinaryIO,
        start_offset: int = 0,
        monitor: Cancellation | None = None,
    ) -> DownloadStatus:  # pragma: no cover - structural contract
        ...

    def open_stream(self, uri: str, monitor: Cancellation | None = None) -> BinaryIO:  # pragma: no cover
        ...

    def get_last_modified(self, uri: str, monitor: Cancellation | None = None) -> float | None:  # pragma: no cover
        ...


def parse_http_date(value: str | None) -> float | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class HttpTransport:
    """Download resources over HTTP(S) with retries and backoff."""

    def __init__(
        self,
        *,
        client: Session | None = None,
        max_retries: int = 5,
        backoff_factor: float = 0.65,
        timeout: tuple[float, float] = DEFAULT_TIMEOUT,
        copier: ByteCopier | None = None,
        chunk_size: int = 65536,
    ) -> None:
        self.max_retries = max(1, max_retries)
        self.backoff_factor = max(backoff_factor, 0.0)
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._copier = copier or ByteCopier()
        self._session_owner = client is None
        self._session = client or self._build_session()

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def close(self) -> None:
        if self._session_owner:
            self._session.close()

    def _build_session(self) -> Session:
        session = Session()
        session.headers.update(DEFAULT_HEADERS)
        return session

    def download(
        self,
        uri: str,
        target: BinaryIO,
        start_offset: int = 0,
        monitor: Cancellation | None = None,
    ) -> DownloadStatus:
        """Write the resource at *uri* into *target* and report the outcome.

        Each attempt is staged in memory and only copied to *target* once
        the whole body arrived, so retried attempts never leave duplicate
        or partial bytes behind. Failures are reported, not raised.
        """

        headers: dict[str, str] = {}
        if start_offset > 0:
            headers["Range"] = f"bytes={start_offset}-"

        attempt = 0
        last_error: RequestException | None = None
        while attempt < self.max_retries:
            attempt += 1
            if monitor is not None and monitor.cancelled:
                return DownloadStatus.failure(f"Download of {uri} was cancelled")
            staging = io.BytesIO()
            try:
                with self._session.get(
                    uri,
                    headers=headers,
                    stream=True,
                    timeout=self._timeout,
                ) as response:
                    response.raise_for_status()
                    try:
                        for chunk in response.iter_content(chunk_size=self._chunk_size):
                            if monitor is not None and monitor.cancelled:
                                raise DownloadCancelled(f"Download of {uri} was cancelled")
                            if chunk:
                                staging.write(chunk)
                    except STREAM_RETRY_EXCEPTIONS as exc:
                        raise RequestException(f"Stream error while downloading {uri}: {exc}") from exc
                    staging.seek(0)
                    self._copier.copy(staging, target)
                    return DownloadStatus.success(
                        last_modified=parse_http_date(response.headers.get("Last-Modified")),
                        status_code=response.status_code,
                    )
            except DownloadCancelled as exc:
                return DownloadStatus.failure(str(exc), error=exc)
            except HTTPError as exc:
                last_error = exc
                status_code = exc.response.status_code if exc.response is not None else None
                if not self._should_retry(exc.response, attempt):
                    return DownloadStatus.failure(
                        f"HTTP {status_code} while downloading {uri}",
                        status_code=status_code,
                        error=exc,
                    )
                logger.debug("Retrying %s after HTTP %s (attempt %d)", uri, status_code, attempt)
                self._sleep(self._retry_delay(attempt, exc.response))
            except RequestException as exc:
                last_error = exc
                if attempt >= self.max_retries:
                    break
                logger.debug("Retrying %s after %s (attempt %d)", uri, exc, attempt)
                self._sleep(self._retry_delay(attempt))

        return DownloadStatus.failure(
            f"Failed to download {uri} after {attempt} attempts: {last_error}",
            error=last_error,
        )

    def open_stream(self, uri: str, monitor: Cancellation | None = None) -> BinaryIO:
        """Open a streaming response body; the caller must close it."""

        self._check_cancelled(uri, monitor)
        try:
            response = self._session.get(uri, stream=True, timeout=self._timeout)
        except RequestException as exc:
            raise TransportError(f"Cannot open {uri}: {exc}") from exc
        try:
            self._raise_for_status(uri, response)
        except TransportError:
            response.close()
            raise
        response.raw.decode_content = True
        return response.raw

    def get_last_modified(self, uri: str, monitor: Cancellation | None = None) -> float | None:
        """Return the server-reported modification time of *uri*, if any."""

        attempt = 0
        while True:
            attempt += 1
            self._check_cancelled(uri, monitor)
            try:
                response = self._session.head(uri, allow_redirects=True, timeout=self._timeout)
            except RequestException as exc:
                if attempt >= self.max_retries:
                    raise TransportError(f"Cannot query {uri}: {exc}") from exc
                self._sleep(self._retry_delay(attempt))
                continue
            if self._should_retry(response, attempt):
                self._sleep(self._retry_delay(attempt, response))
                continue
            self._raise_for_status(uri, response)
            return parse_http_date(response.headers.get("Last-Modified"))

    def _check_cancelled(self, uri: str, monitor: Cancellation | None) -> None:
        if monitor is not None and monitor.cancelled:
            raise DownloadCancelled(f"Request for {uri} was cancelled")

    def _raise_for_status(self, uri: str, response: Response) -> None:
        status = response.status_code
        if status in NOT_FOUND_STATUSES:
            raise ResourceNotFound(f"{uri} was not found", status_code=status)
        if status in AUTH_FAILED_STATUSES:
            raise AuthenticationFailed(f"Authentication failed for {uri}", status_code=status)
        if status >= 400:
            raise TransportError(f"HTTP {status} for {uri}", status_code=status)

    def _sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def _should_retry(self, response: Response | None, attempt: int) -> bool:
        if response is None:
            return attempt < self.max_retries
        return response.status_code in RETRIABLE_STATUSES and attempt < self.max_retries

    def _retry_delay(self, attempt: int, response: Response | None = None) -> float:
        if response is not None:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    parsed = float(retry_after)
                    if parsed >= 0:
                        return parsed
                except ValueError:
                    pass
        base = self.backoff_factor * (2 ** (attempt - 1))
        jitter = random.uniform(0, base / 2 if base else 0)
        return base + jitter


__all__ = [
    "AuthenticationFailed",
    "Cancellation",
    "DownloadCancelled",
    "DownloadStatus",
    "HttpTransport",
    "ResourceNotFound",
    "Transport",
    "TransportError",
    "parse_http_date",
]
