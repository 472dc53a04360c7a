"""
EduChain - Fake Content Store

Derives a stable CID-like hash from the artifact bytes. Selected with
CONTENT_STORE_MODE=fake.
"""

import hashlib

from educhain.bridges.content import ContentReference, ContentStore
from educhain.core.errors import ContentUploadFailure


class FakeContentStore(ContentStore):
    mode = "fake"
    
    def __init__(self, gateway_url: str = "https://gateway.pinata.cloud/ipfs") -> None:
        self.gateway_url = gateway_url.rstrip("/")
        self._fail_uploads = False
        self._objects: dict[str, bytes] = {}
        self.upload_count = 0
    
    def set_failing(self, failing: bool) -> None:
        """Make subsequent uploads raise ContentUploadFailure."""
        self._fail_uploads = failing
    
    def get(self, content_hash: str) -> bytes:
        return self._objects[content_hash]
    
    async def upload(self, data: bytes, filename: str, content_type: str = "application/octet-stream") -> ContentReference:
        if self._fail_uploads:
            raise ContentUploadFailure("content store unavailable")
        self.upload_count += 1
        content_hash = "Qm" + hashlib.sha256(data).hexdigest()[:44]
        self._objects[content_hash] = data
        return ContentReference(
            hash=content_hash,
            url=f"{self.gateway_url}/{content_hash}",
            size=len(data),
        )
