"""
Cliente de upload por chunks sobre el protocolo resumible (subconjunto de tus 1.0.0).

One upload is created with ``POST``, then the payload is appended with one
``PATCH`` per chunk. The next chunk is sent only after the server
acknowledges the previous one with its new ``Upload-Offset``. Transient
failures are retried with exponential backoff, and every retry asks the
server for its offset first (``HEAD``) so nothing is sent twice.
"""
import base64
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from config import MB
from modules.common.errors import ServiceError, TransportError, ValidationError

logger = logging.getLogger(__name__)

TUS_VERSION = "1.0.0"
CHUNK_CONTENT_TYPE = "application/offset+octet-stream"


@dataclass(frozen=True)
class UploadProgress:
    bytes_uploaded: int
    bytes_total: int

    @property
    def percentage(self) -> float:
        return round(self.bytes_uploaded / self.bytes_total * 100, 2) if self.bytes_total else 100.0


@dataclass(frozen=True)
class UploadOutcome:
    path: str
    upload_url: str
    bytes_total: int


class UploadAborted(ServiceError):
    status_code = 499

    def __init__(self, upload_url: str, bytes_uploaded: int):
        super().__init__(f"Upload cancelado en {bytes_uploaded} bytes")
        self.upload_url = upload_url
        self.bytes_uploaded = bytes_uploaded


ProgressCallback = Callable[[UploadProgress], Union[None, Awaitable[None]]]


def encode_metadata(metadata: dict) -> str:
    return ",".join(
        f"{key} {base64.b64encode(str(value).encode()).decode('ascii')}"
        for key, value in metadata.items()
        if value is not None
    )


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, TransportError) and exc.retryable


class ChunkedTransport:

    def __init__(self, client: httpx.AsyncClient, endpoint: str, chunk_size: int = 6 * MB,
                 retry_attempts: int = 5, backoff_seconds: float = 1.0,
                 backoff_max_seconds: float = 20.0, headers: Optional[dict] = None):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.client = client
        self.endpoint = endpoint
        self.chunk_size = chunk_size
        self.retry_attempts = retry_attempts
        self.backoff_seconds = backoff_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.headers = dict(headers or {})

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=self.backoff_max_seconds),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )

    async def _send(self, method: str, url: str, expected: tuple, **kwargs: Any) -> httpx.Response:
        headers = {**self.headers, "Tus-Resumable": TUS_VERSION, **kwargs.pop("headers", {})}
        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {url} falló: {exc}", retryable=True) from exc

        if response.status_code in expected:
            return response
        retryable = response.status_code >= 500 or response.status_code == 429
        raise TransportError(
            f"{method} {url} respondió {response.status_code}: {response.text[:200]}",
            status=response.status_code,
            retryable=retryable,
        )

    async def _create(self, length: int, metadata: dict) -> str:
        async for attempt in self._retrying():
            with attempt:
                response = await self._send(
                    "POST", self.endpoint, (201,),
                    headers={"Upload-Length": str(length), "Upload-Metadata": encode_metadata(metadata)},
                )
        location = response.headers.get("Location")
        if not location:
            raise TransportError("El servidor no devolvió la URL del upload", status=response.status_code)
        return str(response.url.join(location))

    async def _status(self, upload_url: str) -> tuple[int, Optional[str]]:
        response = await self._send("HEAD", upload_url, (200, 204))
        return int(response.headers["Upload-Offset"]), response.headers.get("Upload-Path")

    async def _resume_offset(self, upload_url: str) -> tuple[int, Optional[str]]:
        async for attempt in self._retrying():
            with attempt:
                return await self._status(upload_url)

    async def _send_chunk(self, data: bytes, upload_url: str, offset: int) -> tuple[int, Optional[str]]:
        async for attempt in self._retrying():
            with attempt:
                path = None
                if attempt.retry_state.attempt_number > 1:
                    offset, path = await self._status(upload_url)
                    logger.info("Retrying chunk of %s from offset %d", upload_url, offset)
                    if offset >= len(data):
                        return offset, path
                chunk = data[offset:offset + self.chunk_size]
                response = await self._send(
                    "PATCH", upload_url, (204,), content=chunk,
                    headers={"Upload-Offset": str(offset), "Content-Type": CHUNK_CONTENT_TYPE},
                )
                return int(response.headers["Upload-Offset"]), response.headers.get("Upload-Path")

    async def _terminate(self, upload_url: str) -> None:
        try:
            await self._send("DELETE", upload_url, (204, 404))
        except TransportError as exc:
            logger.warning("Could not terminate upload %s: %s", upload_url, exc.message)

    @staticmethod
    async def _report(on_progress: Optional[ProgressCallback], uploaded: int, total: int) -> None:
        if on_progress is None:
            return
        result = on_progress(UploadProgress(uploaded, total))
        if inspect.isawaitable(result):
            await result

    async def upload(self, data: bytes, destination_path: str,
                     on_progress: Optional[ProgressCallback] = None, *,
                     content_type: str = "application/pdf", bucket: Optional[str] = None,
                     session_id: Optional[str] = None, upload_url: Optional[str] = None,
                     should_abort: Optional[Callable[[], bool]] = None) -> UploadOutcome:
        """
        Sube ``data`` a ``destination_path`` en chunks de ``chunk_size`` bytes.

        Pass the ``upload_url`` of an interrupted attempt to resume it. The
        returned path is the one the server reports, which may differ from
        ``destination_path`` when the server had to disambiguate it.
        """
        total = len(data)
        if total == 0:
            raise ValidationError(f"El archivo {destination_path} está vacío")

        path = None
        if upload_url is None:
            upload_url = await self._create(total, {
                "bucketName": bucket,
                "objectName": destination_path,
                "contentType": content_type,
                "sessionId": session_id,
            })
            offset = 0
            logger.info("Upload of %s created at %s (%d bytes)", destination_path, upload_url, total)
        else:
            offset, path = await self._resume_offset(upload_url)
            logger.info("Resuming upload %s at offset %d/%d", upload_url, offset, total)

        while offset < total:
            if should_abort is not None and should_abort():
                await self._terminate(upload_url)
                raise UploadAborted(upload_url, offset)
            offset, path = await self._send_chunk(data, upload_url, offset)
            await self._report(on_progress, min(offset, total), total)

        logger.info("Upload %s completed as %s", upload_url, path or destination_path)
        return UploadOutcome(path=path or destination_path, upload_url=upload_url, bytes_total=total)
