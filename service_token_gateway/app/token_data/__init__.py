"""
Token data service layer for the Token Gateway.
"""

from .models import TokenDataError, TokenDataResult, TokenQuery
from .service import TokenDataService

__all__ = ["TokenDataError", "TokenDataResult", "TokenDataService", "TokenQuery"]
