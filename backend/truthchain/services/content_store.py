"""
Content Store Adapters

Pins uploaded media and returns a content identifier (CID).

Backends:
1. Pinata - pinFileToIPFS with a JWT
2. web3.storage - HTTP upload API with a bearer token
3. Local - content-addressed files on disk (development fallback)

Any failure is terminal for the submission and surfaces as
UpstreamUnavailableError; nothing is retried here.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx

from truthchain.core.config import Settings
from truthchain.core.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)


class ContentStore(ABC):
    """Content store adapter interface"""

    mode: str = "unknown"

    @abstractmethod
    async def upload(self, data: bytes, filename: str) -> str:
        """Store bytes and return the content identifier."""


class _HttpPinningStore(ContentStore):
    """Shared multipart upload flow for HTTP pinning services"""

    service_name: str = "ipfs"
    token_setting: str = ""

    def __init__(
        self,
        token: str,
        api_url: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    @abstractmethod
    def upload_url(self) -> str:
        """Pinning endpoint for multipart uploads."""

    @abstractmethod
    def _extract_cid(self, payload: dict) -> Optional[str]:
        """CID field of the service's JSON response."""

    async def upload(self, data: bytes, filename: str) -> str:
        if not self.token:
            raise UpstreamUnavailableError(
                f"{self.token_setting} not configured",
                service=self.service_name,
                hint=f"Set {self.token_setting} or switch CONTENT_STORE_BACKEND to 'local'.",
            )

        files = {"file": (filename or "upload", data, "application/octet-stream")}
        headers = {"Authorization": f"Bearer {self.token}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                logger.info(f"[ContentStore] Uploading {len(data)} bytes to {self.service_name}")
                response = await client.post(self.upload_url, files=files, headers=headers)
                response.raise_for_status()
                payload = response.json()

        except httpx.HTTPStatusError as e:
            logger.error(
                f"[ContentStore] {self.service_name} rejected upload: "
                f"{e.response.status_code} - {e.response.text[:200]}"
            )
            hint = None
            if e.response.status_code in (401, 403):
                hint = f"Check that {self.token_setting} is valid."
            raise UpstreamUnavailableError(
                f"{self.service_name} API error: {e.response.status_code}",
                service=self.service_name,
                hint=hint,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"[ContentStore] {self.service_name} unreachable: {e}")
            raise UpstreamUnavailableError(
                f"Failed to upload to {self.service_name}: {e}",
                service=self.service_name,
            ) from e
        except ValueError as e:
            raise UpstreamUnavailableError(
                f"{self.service_name} returned a non-JSON response",
                service=self.service_name,
            ) from e

        cid = self._extract_cid(payload) if isinstance(payload, dict) else None
        if not cid:
            raise UpstreamUnavailableError(
                f"{self.service_name} response did not include a CID",
                service=self.service_name,
            )

        logger.info(f"[ContentStore] Pinned {filename} -> {cid}")
        return cid


class PinataContentStore(_HttpPinningStore):
    mode = "pinata"
    service_name = "pinata"
    token_setting = "PINATA_JWT"

    @property
    def upload_url(self) -> str:
        return f"{self.api_url}/pinning/pinFileToIPFS"

    def _extract_cid(self, payload: dict) -> Optional[str]:
        return payload.get("IpfsHash")


class Web3StorageContentStore(_HttpPinningStore):
    mode = "web3storage"
    service_name = "web3.storage"
    token_setting = "WEB3_STORAGE_TOKEN"

    @property
    def upload_url(self) -> str:
        return f"{self.api_url}/upload"

    def _extract_cid(self, payload: dict) -> Optional[str]:
        return payload.get("cid")


class LocalContentStore(ContentStore):
    """
    Filesystem fallback.

    Content id is local-<sha256 of bytes>, so re-uploading the same file is
    idempotent. Files are served by the API under /uploads.
    """

    mode = "local"

    def __init__(self, directory: str):
        self.directory = Path(directory)

    async def upload(self, data: bytes, filename: str) -> str:
        content_id = f"local-{hashlib.sha256(data).hexdigest()}"
        ext = Path(filename).suffix.lower() if filename else ""

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            file_path = self.directory / f"{content_id}{ext}"
            if not file_path.exists():
                with open(file_path, "wb") as f:
                    f.write(data)
        except OSError as e:
            logger.error(f"[ContentStore] Local write failed: {e}")
            raise UpstreamUnavailableError(
                f"Failed to store file locally: {e}",
                service="local",
                hint="Check that LOCAL_UPLOAD_DIR exists and is writable.",
            ) from e

        logger.info(f"[ContentStore] Stored {filename} locally -> {content_id}")
        return content_id


def resolve_backend(settings: Settings) -> str:
    """Pick the active backend name; 'auto' prefers Pinata, then web3.storage, then local."""
    backend = settings.CONTENT_STORE_BACKEND.strip().lower()
    if backend != "auto":
        return backend
    if settings.PINATA_JWT:
        return "pinata"
    if settings.WEB3_STORAGE_TOKEN:
        return "web3storage"
    return "local"


def build_content_store(settings: Settings) -> ContentStore:
    """Create the content store selected by configuration."""
    backend = resolve_backend(settings)

    if backend == "pinata":
        return PinataContentStore(
            token=settings.PINATA_JWT,
            api_url=settings.PINATA_API_URL,
            timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        )
    if backend == "web3storage":
        return Web3StorageContentStore(
            token=settings.WEB3_STORAGE_TOKEN,
            api_url=settings.WEB3_STORAGE_API_URL,
            timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        )
    if backend == "local":
        return LocalContentStore(settings.LOCAL_UPLOAD_DIR)

    raise ValueError(f"Unknown CONTENT_STORE_BACKEND: {settings.CONTENT_STORE_BACKEND}")
