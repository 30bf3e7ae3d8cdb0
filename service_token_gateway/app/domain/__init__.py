"""
Domain utilities for the Token Gateway.

Includes cross-cutting request processing helpers that do not belong to
adapters or transport-specific layers.
"""

from .auth_gate import SharedSecretAuth

__all__ = [
    "SharedSecretAuth",
]
