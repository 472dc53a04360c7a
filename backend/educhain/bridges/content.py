"""
EduChain - Content Bridge

Content-addressed storage for certificate artifacts (IPFS pinning).
Uploads are not retried here; a failure raises ContentUploadFailure and the
issuance workflow records it on the certificate.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from educhain.core.config import Settings
from educhain.core.errors import ContentUploadFailure
from educhain.schemas.base import CamelModel

logger = logging.getLogger(__name__)


class ContentReference(CamelModel):
    """Immutable pointer to an uploaded artifact."""
    hash: str
    url: str
    size: Optional[int] = None


class ContentStore(ABC):
    mode: str = "abstract"
    
    @abstractmethod
    async def upload(self, data: bytes, filename: str, content_type: str = "application/octet-stream") -> ContentReference:
        """Store ``data`` and return its content reference."""
    
    async def close(self) -> None:
        return None


class PinataContentStore(ContentStore):
    """Pins artifacts through the Pinata pinning API."""
    
    mode = "pinata"
    
    def __init__(
        self,
        jwt: Optional[str],
        api_url: str = "https://api.pinata.cloud",
        gateway_url: str = "https://gateway.pinata.cloud/ipfs",
        timeout: float = 60.0,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.gateway_url = gateway_url.rstrip("/")
        self._jwt = jwt
        self.client = httpx.AsyncClient(timeout=timeout)
    
    async def upload(self, data: bytes, filename: str, content_type: str = "application/octet-stream") -> ContentReference:
        if not self._jwt:
            raise ContentUploadFailure("content store credential not configured")
        
        try:
            response = await self.client.post(
                f"{self.api_url}/pinning/pinFileToIPFS",
                headers={"Authorization": f"Bearer {self._jwt}"},
                files={"file": (filename, data, content_type)},
            )
        except httpx.RequestError as e:
            logger.warning(f"[CONTENT] Upload of {filename} failed: {e}")
            raise ContentUploadFailure(f"content store unavailable: {e}") from e
        
        if response.status_code not in (200, 201):
            logger.warning(f"[CONTENT] Upload rejected: {response.status_code} {response.text}")
            raise ContentUploadFailure(f"content store returned {response.status_code}")
        
        try:
            ipfs_hash = response.json().get("IpfsHash")
        except ValueError as e:
            logger.warning(f"[CONTENT] Upload response for {filename} is not JSON: {response.text[:200]}")
            raise ContentUploadFailure("content store returned invalid JSON") from e
        if not ipfs_hash:
            raise ContentUploadFailure("content store response missing IpfsHash")
        
        logger.info(f"[CONTENT] Pinned {filename} as {ipfs_hash}")
        return ContentReference(
            hash=ipfs_hash,
            url=f"{self.gateway_url}/{ipfs_hash}",
            size=len(data),
        )
    
    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def build_content_store(settings: Settings) -> ContentStore:
    """Select the content store named by CONTENT_STORE_MODE."""
    if settings.CONTENT_STORE_MODE == "fake":
        from educhain.services.mocks.content import FakeContentStore
        
        store: ContentStore = FakeContentStore(gateway_url=settings.PINATA_GATEWAY_URL)
    else:
        store = PinataContentStore(
            jwt=settings.PINATA_JWT,
            api_url=settings.PINATA_API_URL,
            gateway_url=settings.PINATA_GATEWAY_URL,
        )
    logger.info(f"[CONTENT] Using {store.mode} content store")
    return store
