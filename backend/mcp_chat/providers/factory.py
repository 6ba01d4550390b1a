"""Selects a provider implementation by name."""

from __future__ import annotations

from typing import Any, Dict, Type

from ..settings import ProviderSettings
from .anthropic_provider import AnthropicProvider
from .base import Provider, ProviderError
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider


class ProviderFactory:
    """Factory for creating provider instances."""

    _aliases: Dict[str, str] = {"claude": "anthropic"}

    def __init__(self, settings: ProviderSettings, clients: Dict[str, Any] | None = None):
        self.settings = settings
        self._clients = dict(clients or {})
        self._providers: Dict[str, Type[Provider]] = {
            "gemini": GeminiProvider,
            "anthropic": AnthropicProvider,
            "openai": OpenAIProvider,
        }

    def register(self, name: str, provider_class: Type[Provider]) -> None:
        """Register a new provider."""
        self._providers[name.lower()] = provider_class

    def available_providers(self) -> list[str]:
        return sorted(set(self._providers) | set(self._aliases))

    def resolve_name(self, provider: str | None) -> str:
        name = (provider or self.settings.default_provider).strip().lower()
        return self._aliases.get(name, name)

    def default_model(self, provider_name: str) -> str | None:
        if provider_name == "gemini":
            return self.settings.gemini_model
        if provider_name == "anthropic":
            return self.settings.anthropic_model
        if provider_name == "openai":
            return self.settings.openai_model
        return None

    def create(self, provider: str | None = None, model: str | None = None) -> Provider:
        """
        Create a provider instance.

        Args:
            provider: Selector such as ``"gemini"``, ``"claude"`` or ``"openai"``; the
                configured default when omitted.
            model: Model override; the provider's configured model when omitted.

        Raises:
            ProviderError: If the provider is not recognized.
        """
        name = self.resolve_name(provider)
        provider_class = self._providers.get(name)
        if provider_class is None:
            raise ProviderError(f"Unknown provider: {provider}", kind="config", provider=name)
        model_name = model or self.default_model(name) or ""
        return provider_class(model=model_name, settings=self.settings, client=self._clients.get(name))
