"""Provider implementations."""

from app.ai.providers.base import AIModel, Provider, StructuredModelResponse, TokenUsage
from app.ai.providers.gemini import GeminiModel, GeminiProvider

__all__ = ["AIModel", "Provider", "StructuredModelResponse", "TokenUsage", "GeminiModel", "GeminiProvider"]
