from .auth import CurrentUser, JWTClaims
from .memory import EntityType, ExtractionResult, Sentiment

__all__ = [
    "CurrentUser",
    "EntityType",
    "ExtractionResult",
    "JWTClaims",
    "Sentiment",
]
