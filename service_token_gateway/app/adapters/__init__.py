"""
Adapters package for the Token Gateway.

Contains HTTP client wrappers for external dependencies (the Moralis
server). These adapters encapsulate:

- Base URLs and request shapes
- Error handling that maps to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .moralis_client import MoralisClient

__all__ = [
    "MoralisClient",
]
