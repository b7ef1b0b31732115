"""SourceAdapter capability and adapter registry.

An adapter is anything with a ``name``, the ``kind`` of records it produces
and an async ``fetch(target)``. No base class is required; the orchestrator
only relies on this protocol.

Usage:
    class TwseQuotes:
        name = "twse_quotes"
        kind = EntityKind.DAILY_QUOTE

        async def fetch(self, target):
            ...  # return list[QuoteRecord] or raise FetchError

    register_adapter(TwseQuotes())
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence
from typing import Protocol, runtime_checkable

from stockpipe.core.logging import get_logger
from stockpipe.domain.records import EntityKind, NormalizedRecord


logger = get_logger("sources")


@runtime_checkable
class SourceAdapter(Protocol):
    """Capability of fetching normalized records for one target."""

    name: str
    kind: EntityKind

    async def fetch(self, target: Hashable) -> Sequence[NormalizedRecord]:
        """Return normalized records for ``target`` or raise ``FetchError``."""
        ...


# Global adapter registry
_adapters: dict[str, SourceAdapter] = {}


def register_adapter(adapter: SourceAdapter) -> SourceAdapter:
    """Register an adapter under its name, replacing any previous one."""
    if not isinstance(adapter, SourceAdapter):
        raise TypeError(f"{adapter!r} does not implement SourceAdapter")
    _adapters[adapter.name] = adapter
    logger.debug(f"Registered source adapter: {adapter.name} ({adapter.kind.value})")
    return adapter


def get_adapter(name: str) -> SourceAdapter | None:
    """Get a registered adapter by name."""
    return _adapters.get(name)


def get_adapters_for(kind: EntityKind) -> list[SourceAdapter]:
    """All registered adapters producing ``kind`` records."""
    return [adapter for adapter in _adapters.values() if adapter.kind == kind]


def list_adapter_names() -> list[str]:
    """List all registered adapter names."""
    return list(_adapters.keys())


def clear_adapters() -> None:
    """Remove every registered adapter."""
    _adapters.clear()
