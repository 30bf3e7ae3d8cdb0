"""
Token data aggregation: one price lookup plus one metadata lookup.
"""

from __future__ import annotations

from typing import Union

from shared.errors import UpstreamError
from shared.logging import get_logger

from service_token_gateway.app.adapters.moralis_client import MoralisClient
from service_token_gateway.app.token_data.models import TokenDataError, TokenDataResult, TokenQuery


FETCH_FAILED_MESSAGE = "Failed to fetch token data"


class TokenDataService:
    """Combines the provider's price and metadata answers into one response."""

    def __init__(self, client: MoralisClient) -> None:
        self.client = client
        self.logger = get_logger("gateway.token_data")

    def build_query(self, token_address: str) -> TokenQuery:
        return TokenQuery(token_address=token_address, chain_id=self.client.chain_id)

    async def get_token_data(self, token_address: str) -> Union[TokenDataResult, TokenDataError]:
        """
        Look up price and metadata for a token.

        Upstream failures come back as a TokenDataError value instead of an
        exception. ``details.source`` says which lookup failed.
        """
        query = self.build_query(token_address)

        try:
            price, metadata = await self.client.fetch_token_data(query.token_address)
        except UpstreamError as exc:
            self.logger.error(
                FETCH_FAILED_MESSAGE,
                token_address=query.token_address,
                chain_id=query.chain_id,
                source=exc.source,
                error=exc.message
            )
            return TokenDataError(
                error=FETCH_FAILED_MESSAGE,
                details={
                    "source": exc.source,
                    "code": exc.code,
                    "message": exc.message,
                    **exc.details,
                }
            )

        return TokenDataResult(price=price["usdPrice"], metadata=metadata)
