"""Local SHA-256 integrity hashing. Always configured; no network."""

import asyncio
import hashlib

from proof_pipeline.data_management.schemas.capability_schema import ContentDigest
from proof_pipeline.data_management.schemas.submission_schema import Submission
from proof_pipeline.gateways.base_gateway import CapabilityGateway, GatewayError

CHUNK_SIZE = 1024 * 1024


def sha256_digest(data: bytes) -> str:
    digest = hashlib.sha256()
    view = memoryview(data)
    for offset in range(0, len(view), CHUNK_SIZE):
        digest.update(view[offset:offset + CHUNK_SIZE])
    return digest.hexdigest()


class HashingGateway(CapabilityGateway[Submission, ContentDigest]):
    """Hashes the artifact bytes off the event loop.

    Only an unreadable artifact reference produces a mocked digest, derived
    from the submission's identifying fields.
    """

    name = "hashing"
    endpoint = "local"

    def _configured(self) -> bool:
        return True

    async def _call(self, request: Submission) -> ContentDigest:
        try:
            data = await asyncio.to_thread(request.read_artifact)
        except OSError as e:
            raise GatewayError(f"artifact unreadable: {e}") from e
        digest = await asyncio.to_thread(sha256_digest, data)
        return ContentDigest(algorithm="sha256", digest=digest, size_bytes=len(data))

    def _mock(self, request: Submission) -> ContentDigest:
        return ContentDigest(
            algorithm="sha256",
            digest=request.fingerprint(),
            size_bytes=request.size_bytes or 0,
        )
