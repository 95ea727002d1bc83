"""Generation backends."""

from physiofit.models.ollama import FALLBACK_REPLY, OllamaGenerationClient

__all__ = ["FALLBACK_REPLY", "OllamaGenerationClient"]
