"""Provider adapters for the extraction service."""

from .base import LLMAPIError, LLMClient
from .ollama import OllamaClient
from .openai import OpenAIClient

__all__ = ["LLMAPIError", "LLMClient", "OllamaClient", "OpenAIClient"]
