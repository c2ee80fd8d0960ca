"""Provider implementations."""

from app.ai.providers.base import AIModel, ImageResponse, ModelResponse, Provider, SimpleModelResponse, StructuredModelResponse
from app.ai.providers.gemini import GeminiModel, GeminiProvider
from app.ai.providers.openrouter import OpenRouterModel, OpenRouterProvider

__all__ = ["AIModel", "ImageResponse", "ModelResponse", "SimpleModelResponse", "StructuredModelResponse", "Provider", "GeminiModel", "GeminiProvider", "OpenRouterModel", "OpenRouterProvider"]
