"""
Moralis client for the Token Gateway.

Talks to a Moralis server through its cloud-function endpoint: every Web3
API call is a ``POST {server_url}/functions/<name>`` whose JSON body carries
the call options plus ``_ApplicationId``, and whose answer sits under
``result``.
"""

import asyncio
import time
from typing import Any, Dict, Optional, Tuple

import httpx

from shared.errors import UpstreamError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


PRICE_FUNCTION = "getTokenPrice"
METADATA_FUNCTION = "getTokenMetadata"


class MoralisClient:
    """Client for token price and metadata lookups on a Moralis server."""

    def __init__(self, server_url: str, app_id: str, chain_id: str,
                 timeout: float = 10.0, metrics: Optional[MetricsCollector] = None):
        self.base_url = server_url.rstrip('/')
        self.app_id = app_id
        self.chain_id = chain_id
        self.timeout = timeout
        self.metrics = metrics
        self.logger = get_logger("gateway.moralis_client")

    async def get_token_price(self, address: str) -> Dict[str, Any]:
        """Fetch the price payload for a token; ``usdPrice`` is guaranteed numeric."""
        result = await self._call_function(
            PRICE_FUNCTION,
            "price",
            {"address": address, "chain": self.chain_id}
        )

        usd_price = result.get("usdPrice") if isinstance(result, dict) else None
        if isinstance(usd_price, bool) or not isinstance(usd_price, (int, float)):
            raise UpstreamError(
                "price",
                "Price payload has no numeric usdPrice",
                details={"address": address}
            )
        return result

    async def get_token_metadata(self, address: str) -> Dict[str, Any]:
        """Fetch the metadata object for a token."""
        result = await self._call_function(
            METADATA_FUNCTION,
            "metadata",
            {"addresses": [address], "chain": self.chain_id}
        )

        # The server answers with one entry per requested address
        if isinstance(result, list):
            result = result[0] if result else None
        if not isinstance(result, dict):
            raise UpstreamError(
                "metadata",
                "Metadata payload is empty or not an object",
                details={"address": address}
            )
        return result

    async def fetch_token_data(self, address: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Run the price and metadata lookups concurrently.

        Raises the first lookup's UpstreamError if either fails.
        """
        price, metadata = await asyncio.gather(
            self.get_token_price(address),
            self.get_token_metadata(address),
            return_exceptions=True
        )
        for outcome in (price, metadata):
            if isinstance(outcome, BaseException):
                raise outcome
        return price, metadata

    async def _call_function(self, function: str, lookup: str, options: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/functions/{function}"
        body = dict(options, _ApplicationId=self.app_id)
        start_time = time.time()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=body)
        except httpx.HTTPError as e:
            self._record(lookup, "error", start_time)
            self.logger.error("Moralis request failed", function=function, error=str(e))
            raise UpstreamError(
                lookup,
                f"Request failed: {e.__class__.__name__}",
                details={"error": str(e)}
            ) from e

        if not response.is_success:
            self._record(lookup, "error", start_time)
            self.logger.error(
                "Moralis returned an error status",
                function=function,
                status_code=response.status_code,
                response=response.text
            )
            raise UpstreamError(
                lookup,
                f"Unexpected status {response.status_code}",
                details={"status_code": response.status_code, "body": self._error_body(response)}
            )

        try:
            payload = response.json()
        except ValueError as e:
            self._record(lookup, "error", start_time)
            self.logger.error("Moralis returned a non-JSON body", function=function)
            raise UpstreamError(lookup, "Malformed response body") from e

        if not isinstance(payload, dict) or "result" not in payload:
            self._record(lookup, "error", start_time)
            self.logger.error("Moralis response has no result", function=function)
            raise UpstreamError(lookup, "Response has no result field")

        self._record(lookup, "success", start_time)
        self.logger.debug("Moralis function called", function=function)
        return payload["result"]

    def _record(self, lookup: str, outcome: str, start_time: float) -> None:
        if self.metrics is not None:
            self.metrics.record_upstream_call(lookup, outcome, time.time() - start_time)

    @staticmethod
    def _error_body(response: httpx.Response) -> Any:
        """Parse server errors ({"code": ..., "error": ...}) when possible."""
        try:
            return response.json()
        except ValueError:
            return response.text
