"""Built-in adapter variants that need no network access."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable, Mapping, Sequence

from stockpipe.core.exceptions import FetchError
from stockpipe.domain.records import EntityKind, NormalizedRecord


class StaticSourceAdapter:
    """Serves a fixed set of records per target (reference data, replays)."""

    def __init__(
        self,
        name: str,
        kind: EntityKind,
        records: Mapping[Hashable, Sequence[NormalizedRecord]],
    ):
        self.name = name
        self.kind = kind
        self._records = dict(records)

    async def fetch(self, target: Hashable) -> list[NormalizedRecord]:
        if target not in self._records:
            raise FetchError(
                message=f"{self.name}: no data for {target}",
                details={"source": self.name, "target": str(target)},
            )
        return list(self._records[target])


class CallableSourceAdapter:
    """Adapts an async callable ``func(target) -> records``."""

    def __init__(
        self,
        name: str,
        kind: EntityKind,
        func: Callable[[Hashable], Awaitable[Sequence[NormalizedRecord]]],
    ):
        self.name = name
        self.kind = kind
        self._func = func

    async def fetch(self, target: Hashable) -> list[NormalizedRecord]:
        return list(await self._func(target))
