"""
Request and response shapes for token lookups.
"""

from dataclasses import dataclass
from typing import Any, Dict, Union

from pydantic import BaseModel


@dataclass(frozen=True)
class TokenQuery:
    """One token lookup; the address is passed upstream untouched."""

    token_address: str
    chain_id: str


class TokenDataResult(BaseModel):
    """Successful lookup: USD price plus the provider's metadata object."""

    price: Union[int, float]
    metadata: Dict[str, Any]


class TokenDataError(BaseModel):
    """Failed lookup, returned as a value so the route picks the status code."""

    error: str
    details: Dict[str, Any] = {}
