"""Client for uploading video files straight to the media CDN.

A transfer runs as an :class:`UploadTask`: start it, read percentages from
``progress()``, and collect the outcome from ``await result()``. ``cancel()``
aborts the transfer at its next await point and may be called any number of
times. Files are validated (type and size) before anything is sent.

Typical use::

    async with httpx.AsyncClient(base_url=api_url, cookies=session) as api:
        grant = await fetch_upload_grant(api)
    task = UploadTask(UploadSource.from_path("clip.mp4"), grant).start()
    async for percent in task.progress():
        print(percent)
    uploaded = await task.result()
"""

import asyncio
import io
import mimetypes
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Callable

import httpx

from .config import settings
from .logger import logger
from .schemas import UploadAuthResponse

DEFAULT_ACCEPT = tuple(settings.get_upload_allowed_types())
DEFAULT_MAX_BYTES = settings.UPLOAD_MAX_BYTES

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(num_bytes: int) -> str:
    """Human readable size, e.g. ``1.50 MB``. Whole bytes are shown without decimals."""
    if num_bytes <= 0:
        return "0 B"
    unit = 0
    while unit < len(_SIZE_UNITS) - 1 and num_bytes >= 1024 ** (unit + 1):
        unit += 1
    value = num_bytes / 1024 ** unit
    return f"{value:.{0 if unit == 0 else 2}f} {_SIZE_UNITS[unit]}"


# ==================== Errors ====================


class UploadValidationError(ValueError):
    """The file was rejected before the transfer started."""


class UploadError(Exception):
    """The transfer failed (network error or non-2xx from the media service)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UploadCancelledError(UploadError):
    """The transfer was cancelled by the caller."""


def validate_upload(
    content_type: str | None,
    size: int,
    accept: tuple[str, ...] | list[str] = DEFAULT_ACCEPT,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> None:
    """Raise UploadValidationError for unsupported types or oversize files."""
    if content_type not in accept:
        raise UploadValidationError(f"Unsupported file type: {content_type or 'unknown'}")
    if size > max_bytes:
        raise UploadValidationError(
            f"File too large: {format_bytes(size)} (limit {format_bytes(max_bytes)})"
        )


# ==================== Sources and Results ====================


@dataclass
class UploadSource:
    """A readable binary file plus the metadata the media service needs."""
    filename: str
    content_type: str | None
    fileobj: BinaryIO
    size: int
    owned: bool = False  # Closed by the task when it opened the file itself

    @classmethod
    def from_path(cls, path: str | os.PathLike, content_type: str | None = None) -> "UploadSource":
        path = Path(path)
        content_type = content_type or mimetypes.guess_type(path.name)[0]
        return cls(
            filename=path.name,
            content_type=content_type,
            fileobj=path.open("rb"),
            size=path.stat().st_size,
            owned=True,
        )

    @classmethod
    def from_bytes(cls, data: bytes, filename: str, content_type: str) -> "UploadSource":
        return cls(filename=filename, content_type=content_type, fileobj=io.BytesIO(data), size=len(data))

    def close(self) -> None:
        if self.owned:
            self.fileobj.close()


@dataclass
class UploadResult:
    """What the media service reports for a stored file."""
    file_id: str | None
    name: str | None
    url: str | None
    thumbnail_url: str | None
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict) -> "UploadResult":
        return cls(
            file_id=payload.get("fileId"),
            name=payload.get("name"),
            url=payload.get("url"),
            thumbnail_url=payload.get("thumbnailUrl"),
            raw=payload,
        )


class _ProgressReader:
    """File wrapper that reports bytes handed to the HTTP client."""

    def __init__(self, fileobj: BinaryIO, on_read: Callable[[int], None]):
        self._fileobj = fileobj
        self._on_read = on_read
        self._sent = 0

    def read(self, size: int = -1) -> bytes:
        chunk = self._fileobj.read(size)
        if chunk:
            self._sent += len(chunk)
            self._on_read(self._sent)
        return chunk

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        position = self._fileobj.seek(offset, whence)
        if whence == io.SEEK_SET and offset == 0:
            self._sent = 0
        return position

    def tell(self) -> int:
        return self._fileobj.tell()


# ==================== Upload Task ====================


class UploadState(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class UploadTask:
    """One direct transfer to the media service.

    Each instance carries at most one in-flight transfer; ``start()`` may only
    be called once.
    """

    def __init__(
        self,
        source: UploadSource,
        grant: UploadAuthResponse,
        *,
        client: httpx.AsyncClient | None = None,
        folder: str | None = None,
        accept: tuple[str, ...] | list[str] = DEFAULT_ACCEPT,
        max_bytes: int = DEFAULT_MAX_BYTES,
        timeout: float | None = None,
    ):
        validate_upload(source.content_type, source.size, accept, max_bytes)
        self.source = source
        self.grant = grant
        self.folder = folder
        self.state = UploadState.PENDING
        self.percent = 0
        self._client = client
        self._timeout = timeout
        self._progress: asyncio.Queue[int | None] = asyncio.Queue()
        self._task: asyncio.Task | None = None

    # -------------------- lifecycle --------------------

    def start(self) -> "UploadTask":
        if self.state is UploadState.CANCELLED:
            raise UploadCancelledError("Upload canceled")
        if self._task is not None:
            raise RuntimeError("Upload already started")
        self.state = UploadState.UPLOADING
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(self._finish)
        return self

    def cancel(self) -> bool:
        """Abort the transfer. Returns True only for the call that actually cancelled."""
        if self.state not in (UploadState.PENDING, UploadState.UPLOADING):
            return False

        self.state = UploadState.CANCELLED
        self.percent = 0
        if self._task is None:
            self.source.close()
            self._progress.put_nowait(None)
        else:
            self._task.cancel()
        logger.info(f"[upload] Cancelled {self.source.filename}")
        return True

    @property
    def done(self) -> bool:
        return self.state in (UploadState.SUCCEEDED, UploadState.FAILED, UploadState.CANCELLED)

    # -------------------- channels --------------------

    async def progress(self) -> AsyncIterator[int]:
        """Percent complete (0-100) as bytes are sent; ends when the task finishes."""
        while True:
            percent = await self._progress.get()
            if percent is None:
                return
            yield percent

    async def result(self) -> UploadResult:
        """Wait for the outcome.

        Raises:
            UploadCancelledError: the transfer was cancelled
            UploadError: the transfer failed
        """
        if self._task is None:
            if self.state is UploadState.CANCELLED:
                raise UploadCancelledError("Upload canceled")
            raise RuntimeError("Upload not started")
        try:
            # Shielded: a caller giving up on waiting does not abort the transfer
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                raise UploadCancelledError("Upload canceled") from None
            raise

    # -------------------- transfer --------------------

    def _on_read(self, sent: int) -> None:
        total = self.source.size
        percent = round(sent / total * 100) if total else 100
        if percent != self.percent:
            self.percent = percent
            self._progress.put_nowait(percent)

    def _finish(self, task: asyncio.Task) -> None:
        # Runs even when the task was cancelled before it got to execute
        self.source.close()
        self._progress.put_nowait(None)

    async def _run(self) -> UploadResult:
        try:
            result = await self._send()
            self.state = UploadState.SUCCEEDED
        except asyncio.CancelledError:
            self.state = UploadState.CANCELLED
            raise
        except Exception:
            self.state = UploadState.FAILED
            raise

        logger.info(f"[upload] Stored {self.source.filename} as {result.url}")
        return result

    def _form_fields(self) -> dict:
        params = self.grant.auth_parameters
        fields = {
            "fileName": self.source.filename,
            "publicKey": self.grant.public_key,
            "signature": params.signature,
            "expire": str(params.expire),
            "token": params.token,
            "useUniqueFileName": "true",
        }
        if self.folder:
            fields["folder"] = self.folder
        return fields

    async def _send(self) -> UploadResult:
        reader = _ProgressReader(self.source.fileobj, self._on_read)
        files = {"file": (self.source.filename, reader, self.source.content_type)}

        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            response = await client.post(
                self.grant.upload_endpoint, data=self._form_fields(), files=files
            )
        except httpx.HTTPError as e:
            logger.error(f"[upload] Network error uploading {self.source.filename}: {e}")
            raise UploadError("Network error during upload.") from e
        finally:
            if owns_client:
                await client.aclose()

        if not response.is_success:
            message = response.text or f"Upload failed with status {response.status_code}"
            logger.error(f"[upload] Upload of {self.source.filename} rejected: {response.status_code}")
            raise UploadError(message, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        return UploadResult.from_payload(payload if isinstance(payload, dict) else {})


# ==================== Helpers ====================


async def fetch_upload_grant(api: httpx.AsyncClient, path: str = "/upload-auth") -> UploadAuthResponse:
    """Ask the video service for an upload grant using the caller's session."""
    response = await api.get(path)
    if response.status_code != 200:
        raise UploadError(
            f"Could not obtain upload grant (status {response.status_code})",
            status_code=response.status_code,
        )
    return UploadAuthResponse.model_validate(response.json())


async def upload_video(source: UploadSource, grant: UploadAuthResponse, **options) -> UploadResult:
    """Upload a file and wait for the result, without watching progress."""
    return await UploadTask(source, grant, **options).start().result()
