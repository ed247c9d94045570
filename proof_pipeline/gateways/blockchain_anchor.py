"""Blockchain anchoring through an HTTP anchoring relay.

The relay signs and submits a zero-value transaction carrying the
proof-of-existence note and answers with the transaction id and the round it
was confirmed in. Without a relay URL the gateway returns a ``MOCK_ALGO``
transaction id derived from the content hash.
"""

import hashlib
from typing import Any, Optional

from proof_pipeline.data_management.schemas.capability_schema import (
    AnchorReceipt,
    AnchorRequest,
)
from proof_pipeline.gateways.base_gateway import CapabilityGateway


class BlockchainAnchorGateway(CapabilityGateway[AnchorRequest, AnchorReceipt]):
    name = "blockchain_anchor"

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_token: Optional[str] = None,
        network: str = "testnet",
        **kwargs: Any,
    ) -> None:
        self._api_url = api_url.rstrip("/") if api_url else None
        self._api_token = api_token
        self._network = network
        self.endpoint = f"{self._api_url}/v1/anchors" if self._api_url else None
        super().__init__(**kwargs)

    def _configured(self) -> bool:
        return bool(self._api_url)

    async def _call(self, request: AnchorRequest) -> AnchorReceipt:
        headers = {}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"

        note = request.note()
        response = await self._request(
            "POST",
            self.endpoint,
            headers=headers,
            json={
                "network": self._network,
                "sender": request.submitter,
                "note": note,
            },
        )
        payload = self._json(response)
        tx_id = payload.get("tx_id") or payload["txId"]
        confirmed_round = payload.get("confirmed_round", payload.get("confirmedRound"))

        return AnchorReceipt(
            tx_id=tx_id,
            network=payload.get("network", self._network),
            confirmed_round=int(confirmed_round) if confirmed_round is not None else None,
            note=note,
        )

    def _mock(self, request: AnchorRequest) -> AnchorReceipt:
        digest = hashlib.sha256(request.content_hash.encode("utf-8")).hexdigest().upper()
        return AnchorReceipt(
            tx_id=f"MOCK_ALGO{digest[:43]}",
            network=self._network,
            confirmed_round=None,
            note=request.note(),
        )
