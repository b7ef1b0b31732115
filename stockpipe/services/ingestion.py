"""Fetch-and-merge for one source adapter.

Records of each target are merged as soon as that target's fetch
succeeds, so a slow target does not hold back writes of the others.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from stockpipe.core.logging import get_logger
from stockpipe.domain.records import NormalizedRecord
from stockpipe.merge.merger import MergeReport, UpsertMerger
from stockpipe.sources.base import SourceAdapter

from .fetch_orchestrator import FetchOrchestrator, FetchReport


logger = get_logger("services.ingestion")


@dataclass
class IngestionReport:
    fetch: FetchReport
    merge: MergeReport = field(default_factory=MergeReport)

    def summary(self) -> dict[str, Any]:
        return {"fetch": self.fetch.summary(), "merge": self.merge.summary()}


class IngestionService:
    def __init__(
        self,
        orchestrator: FetchOrchestrator | None = None,
        merger: UpsertMerger | None = None,
    ):
        self._orchestrator = orchestrator or FetchOrchestrator()
        self._merger = merger or UpsertMerger()

    async def ingest(self, adapter: SourceAdapter, targets: Iterable[Hashable]) -> IngestionReport:
        """Fetch ``targets`` from ``adapter`` and merge every successful target."""
        merge_report = MergeReport(kind=adapter.kind)

        async def merge_target(target: Hashable, records: Sequence[NormalizedRecord]) -> None:
            merge_report.extend(await self._merger.merge(records, kind=adapter.kind))

        fetch_report = await self._orchestrator.run(adapter, targets, handler=merge_target)
        report = IngestionReport(fetch=fetch_report, merge=merge_report)
        logger.info(
            f"Ingested {adapter.name}: {len(fetch_report.succeeded)} targets ok, "
            f"{len(fetch_report.failed)} failed, {merge_report.applied} rows written",
            extra={"extra_fields": report.summary()},
        )
        return report
