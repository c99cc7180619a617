"""campaign_etl.batching

Campaign dedup cache and the synchronous batch accumulator.

Flush model:
  - A flush is issued as soon as pending metric rows reach batch_size and
    returns only after the sink has answered both calls.  The next input
    line is not read until then, so at most one batch is ever in flight and
    campaign upserts reach the sink in input order.
  - finish() flushes whatever is left; it is the terminal, awaited flush.
  - upsert_campaigns and insert_metrics are attempted independently.  A
    SinkFailure from either becomes a batch error; there is no retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from campaign_etl.errors import ErrorCollector, SinkFailure
from campaign_etl.sinks import Sink
from campaign_etl.validate import CampaignMeta, MetricRow

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CampaignCache
# ---------------------------------------------------------------------------

class CampaignCache:
    """Campaign ids already emitted during this run.  Grows only."""

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, campaign_id: object) -> bool:
        return campaign_id in self._seen

    def claim(self, campaign_id: str) -> bool:
        """Return True the first time campaign_id is seen, False afterwards."""
        if campaign_id in self._seen:
            return False
        self._seen.add(campaign_id)
        return True


# ---------------------------------------------------------------------------
# Batch + accumulator
# ---------------------------------------------------------------------------

@dataclass
class Batch:
    number: int
    campaigns: list[CampaignMeta] = field(default_factory=list)
    metrics: list[MetricRow] = field(default_factory=list)


@dataclass
class FlushOutcome:
    batch_number: int
    campaigns_sent: int
    metrics_sent: int
    campaigns_failed: bool = False
    metrics_failed: bool = False

    @property
    def ok(self) -> bool:
        return not (self.campaigns_failed or self.metrics_failed)


class BatchAccumulator:
    """Buffers campaigns and metric rows and flushes them to a sink."""

    def __init__(
        self,
        sink: Sink,
        collector: ErrorCollector,
        batch_size: int = 500,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._sink = sink
        self._collector = collector
        self.batch_size = batch_size
        self._campaigns: list[CampaignMeta] = []
        self._metrics: list[MetricRow] = []
        self._batch_number = 0
        self.outcomes: list[FlushOutcome] = []

    @property
    def pending_metrics(self) -> int:
        return len(self._metrics)

    @property
    def pending_campaigns(self) -> int:
        return len(self._campaigns)

    def add(self, metric: MetricRow, campaign: CampaignMeta | None = None) -> FlushOutcome | None:
        """Queue one row; flush if the batch is full.  Returns the flush outcome, if any."""
        if campaign is not None:
            self._campaigns.append(campaign)
        self._metrics.append(metric)
        if len(self._metrics) >= self.batch_size:
            return self.flush()
        return None

    def finish(self) -> FlushOutcome | None:
        if self._metrics or self._campaigns:
            return self.flush()
        return None

    def flush(self) -> FlushOutcome:
        self._batch_number += 1
        batch = Batch(self._batch_number, self._campaigns, self._metrics)
        self._campaigns = []
        self._metrics = []
        outcome = self._send(batch)
        self.outcomes.append(outcome)
        return outcome

    def _send(self, batch: Batch) -> FlushOutcome:
        outcome = FlushOutcome(batch.number, len(batch.campaigns), len(batch.metrics))

        if batch.campaigns:
            try:
                self._sink.upsert_campaigns(batch.campaigns)
            except SinkFailure as exc:
                outcome.campaigns_failed = True
                self._collector.add_batch_error(
                    batch.number, f"Campaigns upsert failed: {exc}"
                )
                log.warning("Batch %d: campaigns upsert failed: %s", batch.number, exc)

        if batch.metrics:
            try:
                self._sink.insert_metrics(batch.metrics)
            except SinkFailure as exc:
                outcome.metrics_failed = True
                self._collector.add_batch_error(
                    batch.number, f"Metrics insert failed: {exc}"
                )
                log.warning("Batch %d: metrics insert failed: %s", batch.number, exc)

        log.info(
            "Flushed batch %d - campaigns: %d, metrics: %d",
            batch.number, outcome.campaigns_sent, outcome.metrics_sent,
        )
        return outcome
