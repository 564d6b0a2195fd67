"""AI completion client."""

from scoutcore.ai.client import OpenRouterClient

__all__ = ["OpenRouterClient"]
