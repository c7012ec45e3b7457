"""
Blob store clients for source PDFs and rendered sheet images.

This module provides:
- BlobStore: the upload/download contract the worker depends on
- SupabaseBlobStore: Supabase Storage REST API over httpx, with
  exponential backoff retry for transient failures
- LocalBlobStore: files on local disk, for development and tests

Uploads always overwrite whatever is stored at the path, so re-rendering
a sheet is idempotent by path.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import quote
import asyncio
import logging

import httpx

from core.exceptions import (
    BlobAuthenticationError,
    BlobNotFoundError,
    BlobStoreError,
    DownloadError,
    UploadError,
)

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """
    Abstract base class for blob stores.

    Paths follow {owner_id}/{project_id}/{package_id}/{id}/{name}; see
    core.constants for the builders.
    """

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        overwrite: bool = True
    ) -> None:
        """
        Store data at bucket/path.

        Raises:
            UploadError: If the object could not be stored
        """
        pass

    @abstractmethod
    async def download(self, bucket: str, path: str) -> bytes:
        """
        Fetch the object at bucket/path.

        Raises:
            DownloadError: If the object could not be fetched or is empty
        """
        pass

    async def aclose(self) -> None:
        """Release network resources"""
        pass


class SupabaseBlobStore(BlobStore):
    """
    Supabase Storage client using the service-role key.

    Features:
    - Upsert uploads (x-upsert header)
    - Retry logic with exponential backoff on 5xx, timeouts and network errors
    - No retry on 401/403/404

    Attributes:
        max_retries: Maximum number of attempts per request (default: 3)
        retry_delay: Initial retry delay in seconds (default: 1.0)
        timeout: Request timeout in seconds (default: 60.0)
    """

    def __init__(
        self,
        url: str,
        service_role_key: str,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = url.rstrip("/")
        self.service_role_key = service_role_key
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _object_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{quote(bucket)}/{quote(path, safe='/')}"

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }
        if extra:
            headers.update(extra)
        return headers

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        overwrite: bool = True
    ) -> None:
        headers = self._headers({
            "Content-Type": content_type,
            "x-upsert": "true" if overwrite else "false",
        })
        await self._request_with_retry(
            "POST", bucket, path, UploadError, headers=headers, content=data
        )
        logger.debug(f"Uploaded {len(data)} bytes to {bucket}/{path}")

    async def download(self, bucket: str, path: str) -> bytes:
        response = await self._request_with_retry(
            "GET", bucket, path, DownloadError, headers=self._headers()
        )
        if not response.content:
            raise DownloadError(
                f"Download returned no data: {bucket}/{path}",
                context={"bucket": bucket, "path": path}
            )
        return response.content

    async def _request_with_retry(
        self,
        method: str,
        bucket: str,
        path: str,
        error_cls,
        **kwargs
    ) -> httpx.Response:
        """
        Make a storage request with retry logic and exponential backoff.

        Returns:
            HTTP response with a 2xx status

        Raises:
            BlobAuthenticationError: For 401/403
            BlobNotFoundError: For a missing object on download
            error_cls: For other failures after max retries
        """
        url = self._object_url(bucket, path)
        context = {"bucket": bucket, "path": path}
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                logger.debug(f"{method} attempt {attempt + 1}/{self.max_retries} to {url}")
                response = await self._client.request(method, url, timeout=self.timeout, **kwargs)

                if response.status_code in (401, 403):
                    raise BlobAuthenticationError(
                        f"Storage authentication failed for {bucket}/{path}",
                        context={**context, "status_code": response.status_code}
                    )

                if method == "GET" and self._is_not_found(response):
                    raise BlobNotFoundError(
                        f"Object not found: {bucket}/{path}",
                        context={**context, "status_code": response.status_code}
                    )

                if response.status_code >= 500:
                    if attempt < self.max_retries - 1:
                        delay = self.retry_delay * (2 ** attempt)
                        logger.warning(
                            f"Storage error {response.status_code}. "
                            f"Retrying in {delay} seconds (attempt {attempt + 1}/{self.max_retries})"
                        )
                        await asyncio.sleep(delay)
                        continue
                    raise error_cls(
                        f"Storage server error after {self.max_retries} attempts",
                        context={
                            **context,
                            "status_code": response.status_code,
                            "retry_count": attempt + 1,
                            "response_body": response.text[:500]
                        }
                    )

                if response.status_code >= 400:
                    raise error_cls(
                        f"Storage request rejected with {response.status_code}",
                        context={
                            **context,
                            "status_code": response.status_code,
                            "response_body": response.text[:500]
                        }
                    )

                return response

            except (httpx.TimeoutException, httpx.NetworkError) as e:
                last_exception = e
                if attempt < self.max_retries - 1:
                    delay = self.retry_delay * (2 ** attempt)
                    logger.warning(f"{type(e).__name__} talking to storage. Retrying in {delay} seconds")
                    await asyncio.sleep(delay)
                else:
                    raise error_cls(
                        f"Storage unreachable after {self.max_retries} attempts",
                        context={**context, "retry_count": attempt + 1},
                        original_exception=e
                    )

        raise error_cls(
            "Max retries exceeded",
            context=context,
            original_exception=last_exception
        )

    @staticmethod
    def _is_not_found(response: httpx.Response) -> bool:
        if response.status_code == 404:
            return True
        # Storage reports missing objects as 400 with a 404 body
        return response.status_code == 400 and "not found" in response.text.lower()

    async def aclose(self) -> None:
        await self._client.aclose()


class LocalBlobStore(BlobStore):
    """Blob store backed by a directory: root/{bucket}/{path}."""

    def __init__(self, root: str):
        self.root = Path(root)

    def _resolve(self, bucket: str, path: str) -> Path:
        root = self.root.resolve()
        bucket_root = (root / bucket).resolve()
        target = (bucket_root / path).resolve()
        if (
            bucket_root == root
            or not bucket_root.is_relative_to(root)
            or target == bucket_root
            or not target.is_relative_to(bucket_root)
        ):
            raise BlobStoreError(
                "Path escapes bucket",
                context={"bucket": bucket, "path": path}
            )
        return target

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        overwrite: bool = True
    ) -> None:
        target = self._resolve(bucket, path)
        if target.exists() and not overwrite:
            raise UploadError(
                f"Object already exists: {bucket}/{path}",
                context={"bucket": bucket, "path": path}
            )
        try:
            await asyncio.to_thread(self._write_file, target, data)
        except OSError as e:
            raise UploadError(
                f"Failed to write {bucket}/{path}",
                context={"bucket": bucket, "path": path},
                original_exception=e
            )

    @staticmethod
    def _write_file(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def download(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise BlobNotFoundError(
                f"Object not found: {bucket}/{path}",
                context={"bucket": bucket, "path": path}
            )
        try:
            data = await asyncio.to_thread(target.read_bytes)
        except OSError as e:
            raise DownloadError(
                f"Failed to read {bucket}/{path}",
                context={"bucket": bucket, "path": path},
                original_exception=e
            )
        if not data:
            raise DownloadError(
                f"Download returned no data: {bucket}/{path}",
                context={"bucket": bucket, "path": path}
            )
        return data


def create_blob_store(settings) -> BlobStore:
    """Build the blob store selected by BLOB_BACKEND."""
    backend = settings.BLOB_BACKEND.lower()

    if backend == "local":
        logger.info(f"Using local blob store at {settings.LOCAL_BLOB_ROOT}")
        return LocalBlobStore(settings.LOCAL_BLOB_ROOT)

    if backend == "supabase":
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required when BLOB_BACKEND=supabase"
            )
        return SupabaseBlobStore(
            url=settings.SUPABASE_URL,
            service_role_key=settings.SUPABASE_SERVICE_ROLE_KEY,
            max_retries=settings.BLOB_MAX_RETRIES,
            retry_delay=settings.BLOB_RETRY_DELAY,
            timeout=settings.BLOB_TIMEOUT,
        )

    raise ValueError(f"Unknown BLOB_BACKEND: {settings.BLOB_BACKEND}")
