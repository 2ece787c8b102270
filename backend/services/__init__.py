"""Services module - Business logic layer"""

from .config_manager import ConfigManager
from .errors import (
    ErrorKind,
    QuotaExhausted,
    RateLimited,
    RelayError,
    TransportFailure,
    Unauthenticated,
    UpstreamError,
)
from .identity_service import IdentityService
from .llm_service import LLMService

__all__ = [
    "ConfigManager",
    "ErrorKind",
    "IdentityService",
    "LLMService",
    "QuotaExhausted",
    "RateLimited",
    "RelayError",
    "TransportFailure",
    "Unauthenticated",
    "UpstreamError",
]
