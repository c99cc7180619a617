"""campaign_etl.sinks

Storage sinks for validated campaign data.

Contract (Sink protocol):
  upsert_campaigns(campaigns) - idempotent by campaign_id, last write wins.
  insert_metrics(metrics)     - append-only; duplicate (campaign_id, date)
                                rows are NOT detected.
  Both raise SinkFailure when the backend rejects the write.  Sinks never
  retry; a failed batch stays failed for this run.

Implementations:
  PostgresSink  - psycopg connection, one transaction per call (one per run in dry-run)
  SupabaseSink  - PostgREST over requests, per-request timeout
  NullSink      - records calls; validate-only runs and tests
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import psycopg
import requests

from campaign_etl.errors import SinkFailure
from campaign_etl.validate import CampaignMeta, MetricRow

log = logging.getLogger(__name__)

CAMPAIGNS_TABLE = "campaigns"
METRICS_TABLE = "campaign_metrics"
_DRY_RUN_SAVEPOINT = "campaign_etl_call"


class Sink(Protocol):
    def upsert_campaigns(self, campaigns: list[CampaignMeta]) -> None:
        ...

    def insert_metrics(self, metrics: list[MetricRow]) -> None:
        ...


# ---------------------------------------------------------------------------
# NullSink
# ---------------------------------------------------------------------------

@dataclass
class NullSink:
    """Accept everything, write nothing."""

    campaign_calls: list[list[CampaignMeta]] = field(default_factory=list)
    metric_calls: list[list[MetricRow]] = field(default_factory=list)

    def upsert_campaigns(self, campaigns: list[CampaignMeta]) -> None:
        self.campaign_calls.append(list(campaigns))

    def insert_metrics(self, metrics: list[MetricRow]) -> None:
        self.metric_calls.append(list(metrics))


# ---------------------------------------------------------------------------
# PostgresSink
# ---------------------------------------------------------------------------

def connect_postgres(db_dsn: str, timeout_seconds: float = 30.0) -> psycopg.Connection:
    """Open a non-autocommit connection with connect and statement timeouts."""
    return psycopg.connect(
        db_dsn,
        autocommit=False,
        connect_timeout=max(1, int(timeout_seconds)),
        options=f"-c statement_timeout={int(timeout_seconds * 1000)}",
    )


class PostgresSink:
    """Write batches through a psycopg connection.

    Each call is its own transaction.  In dry-run mode nothing is committed:
    all calls share one open transaction, each behind a savepoint so a
    failed call does not poison the next, and close() rolls the whole run
    back.  Constraint errors still surface, and metrics see the campaigns
    upserted earlier in the run.
    """

    def __init__(self, conn: psycopg.Connection, dry_run: bool = False) -> None:
        self._conn = conn
        self._dry_run = dry_run

    def upsert_campaigns(self, campaigns: list[CampaignMeta]) -> None:
        self._execute_many(
            f"""
            INSERT INTO {CAMPAIGNS_TABLE} (campaign_id, campaign_name, campaign_type)
            VALUES (%s, %s, %s)
            ON CONFLICT (campaign_id) DO UPDATE SET
              campaign_name = EXCLUDED.campaign_name,
              campaign_type = EXCLUDED.campaign_type,
              updated_at = now()
            """,
            [(c.campaign_id, c.campaign_name, c.campaign_type) for c in campaigns],
            CAMPAIGNS_TABLE,
        )

    def insert_metrics(self, metrics: list[MetricRow]) -> None:
        self._execute_many(
            f"""
            INSERT INTO {METRICS_TABLE}
              (campaign_id, date, impressions, clicks, cost,
               conversions, conversion_value)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            [
                (m.campaign_id, m.date, m.impressions, m.clicks, m.cost,
                 m.conversions, m.conversion_value)
                for m in metrics
            ],
            METRICS_TABLE,
        )

    def _execute_many(self, sql: str, params: list[tuple], table: str) -> None:
        try:
            with self._conn.cursor() as cur:
                if self._dry_run:
                    cur.execute(f"SAVEPOINT {_DRY_RUN_SAVEPOINT}")
                cur.executemany(sql, params)
            if not self._dry_run:
                self._conn.commit()
        except psycopg.Error as exc:
            self._undo(table)
            raise SinkFailure(f"{table}: {exc}") from exc

    def _undo(self, table: str) -> None:
        try:
            if self._dry_run:
                self._conn.execute(f"ROLLBACK TO SAVEPOINT {_DRY_RUN_SAVEPOINT}")
            else:
                self._conn.rollback()
        except psycopg.Error as exc:
            log.warning("%s: rollback after failed write also failed: %s", table, exc)
            if self._dry_run:
                self._rollback_quietly()

    def _rollback_quietly(self) -> None:
        try:
            self._conn.rollback()
        except psycopg.Error as exc:
            log.warning("rollback failed: %s", exc)

    def close(self) -> None:
        if self._dry_run:
            self._rollback_quietly()
        self._conn.close()


# ---------------------------------------------------------------------------
# SupabaseSink
# ---------------------------------------------------------------------------

class SupabaseSink:
    """Write batches to Supabase through its PostgREST endpoint."""

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base = url.rstrip("/") + "/rest/v1"
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        })

    def upsert_campaigns(self, campaigns: list[CampaignMeta]) -> None:
        self._post(
            CAMPAIGNS_TABLE,
            [c.to_record() for c in campaigns],
            params={"on_conflict": "campaign_id"},
            prefer="resolution=merge-duplicates,return=minimal",
        )

    def insert_metrics(self, metrics: list[MetricRow]) -> None:
        self._post(
            METRICS_TABLE,
            [m.to_record() for m in metrics],
            prefer="return=minimal",
        )

    def _post(
        self,
        table: str,
        payload: list[dict],
        prefer: str,
        params: dict[str, str] | None = None,
    ) -> None:
        try:
            resp = self._session.post(
                f"{self._base}/{table}",
                json=payload,
                params=params,
                headers={"Prefer": prefer},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise SinkFailure(f"{table}: {exc}") from exc
        if resp.status_code >= 400:
            raise SinkFailure(f"{table}: HTTP {resp.status_code}: {resp.text[:200]}")
        log.debug("POST %s: %d rows, HTTP %s", table, len(payload), resp.status_code)

    def close(self) -> None:
        self._session.close()
