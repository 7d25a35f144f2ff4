from .base import CallResult, CallStatus, GenerationProvider
from .factory import available_providers, create_provider
from .gemini import GeminiProvider

__all__ = [
    "CallResult",
    "CallStatus",
    "GeminiProvider",
    "GenerationProvider",
    "available_providers",
    "create_provider",
]
