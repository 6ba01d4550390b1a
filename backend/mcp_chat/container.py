"""Explicit dependency container for backend runtime wiring.

This module is side-effect free on import. It builds the one process-wide
:class:`ConnectionRegistry` and everything that shares it, and it owns the
shutdown that closes every live channel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .mcp.bridge import ToolBridge
    from .mcp.registry import ChannelOpener, ConnectionRegistry
    from .orchestrator import ConversationOrchestrator
    from .providers.factory import ProviderFactory
    from .settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class BackendContainer:
    """Holds the constructed runtime dependencies for the backend."""

    settings: Settings
    registry: ConnectionRegistry
    bridge: ToolBridge
    providers: ProviderFactory
    orchestrator: ConversationOrchestrator


def build_container(
    *,
    settings: Settings | None = None,
    channel_opener: ChannelOpener | None = None,
    provider_factory: ProviderFactory | None = None,
) -> BackendContainer:
    """Construct the backend dependency graph without opening any channel."""

    # Local imports keep this module side-effect-free on import.
    from .mcp.bridge import ToolBridge
    from .mcp.registry import ConnectionRegistry
    from .mcp.transports import open_channel
    from .orchestrator import ConversationOrchestrator
    from .providers.factory import ProviderFactory
    from .settings import get_settings

    settings = settings or get_settings()
    opener = channel_opener or partial(
        open_channel,
        client_name=settings.mcp.client_name,
        client_version=settings.mcp.client_version,
        connect_timeout=settings.mcp.connect_timeout_seconds,
    )
    registry = ConnectionRegistry(opener=opener)
    bridge = ToolBridge(registry)
    providers = provider_factory or ProviderFactory(settings.providers)
    orchestrator = ConversationOrchestrator(
        registry,
        bridge,
        providers,
        max_turns=settings.chat.max_turns,
    )
    return BackendContainer(
        settings=settings,
        registry=registry,
        bridge=bridge,
        providers=providers,
        orchestrator=orchestrator,
    )


def startup(container: BackendContainer) -> None:
    """Log the effective configuration; channels open lazily on first use."""

    settings = container.settings
    logger.info(
        "backend ready default_provider=%s max_turns=%s connect_timeout=%s",
        settings.providers.default_provider,
        settings.chat.max_turns,
        settings.mcp.connect_timeout_seconds,
        extra={"run_id": "system"},
    )
    providers = settings.providers
    if not (providers.gemini_api_key or providers.anthropic_api_key or providers.openai_api_key):
        logger.warning(
            "no model provider API key configured; chat requests will fail",
            extra={"run_id": "system"},
        )


async def shutdown(container: BackendContainer) -> None:
    """Close every channel owned by the registry."""

    await container.registry.close_all()
    logger.info("all mcp channels closed", extra={"run_id": "system"})
