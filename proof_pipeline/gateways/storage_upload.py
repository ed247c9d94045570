"""Decentralized storage upload via Pinata (IPFS pinning)."""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Optional

from proof_pipeline.data_management.schemas.capability_schema import StorageReceipt
from proof_pipeline.data_management.schemas.submission_schema import Submission
from proof_pipeline.gateways.base_gateway import CapabilityGateway, GatewayResponseError


class StorageUploadGateway(CapabilityGateway[Submission, StorageReceipt]):
    name = "storage_upload"

    def __init__(
        self,
        jwt: Optional[str] = None,
        api_url: str = "https://api.pinata.cloud",
        ipfs_gateway_url: str = "https://gateway.pinata.cloud/ipfs",
        **kwargs: Any,
    ) -> None:
        self._jwt = jwt
        self._api_url = api_url.rstrip("/")
        self._ipfs_gateway_url = ipfs_gateway_url.rstrip("/")
        self.endpoint = f"{self._api_url}/pinning/pinFileToIPFS"
        super().__init__(**kwargs)

    def _configured(self) -> bool:
        return bool(self._jwt)

    async def _call(self, request: Submission) -> StorageReceipt:
        try:
            data = await asyncio.to_thread(request.read_artifact)
        except OSError as e:
            raise GatewayResponseError(f"artifact unreadable: {e}") from e

        metadata = {
            "name": request.file_name,
            "keyvalues": {
                "submission_id": request.id,
                "media_kind": request.media_kind.value,
            },
        }
        response = await self._request(
            "POST",
            self.endpoint,
            headers={"Authorization": f"Bearer {self._jwt}"},
            files={"file": (request.file_name, data, request.mime_type)},
            data={"pinataMetadata": json.dumps(metadata)},
        )
        payload = self._json(response)
        cid = payload["IpfsHash"]

        pinned_at = datetime.now(timezone.utc)
        if payload.get("Timestamp"):
            pinned_at = datetime.fromisoformat(payload["Timestamp"].replace("Z", "+00:00"))

        return StorageReceipt(
            cid=cid,
            size_bytes=int(payload.get("PinSize") or len(data)),
            gateway_url=f"{self._ipfs_gateway_url}/{cid}",
            pinned_at=pinned_at,
        )

    def _mock(self, request: Submission) -> StorageReceipt:
        cid = f"bafkmock{request.fingerprint()[:51]}"
        return StorageReceipt(
            cid=cid,
            size_bytes=request.size_bytes or 0,
            gateway_url=f"{self._ipfs_gateway_url}/{cid}",
            pinned_at=request.submitted_at,
        )
