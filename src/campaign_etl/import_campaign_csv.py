"""campaign_etl.import_campaign_csv

CLI entrypoint for campaign performance CSV ingestion.

Modes (--mode):
  validate  - check every row and write the error report; nothing is stored
              (strict by default: campaign_type enforced, all violations listed)
  import    - validate and load campaigns + metrics into the sink in batches
              (lenient by default: free campaign_type, first violation only)

Usage (validate):
    python -m campaign_etl.import_campaign_csv \\
        --mode validate \\
        --csv-path data/campaigns.csv

Usage (import into PostgreSQL):
    python -m campaign_etl.import_campaign_csv \\
        --mode import \\
        --csv-path data/campaigns.csv \\
        --sink postgres \\
        --db-dsn "$DB_DSN" \\
        --batch-size 500

Usage (import into Supabase):
    SUPABASE_URL=... SUPABASE_SERVICE_KEY=... \\
    python -m campaign_etl.import_campaign_csv \\
        --mode import \\
        --csv-path data/campaigns.csv \\
        --sink supabase
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from pathlib import Path

import click
import psycopg

from campaign_etl.config import Settings, SettingsValidationError, load_settings
from campaign_etl.errors import SourceFailure
from campaign_etl.pipeline import iter_csv_lines, run_pipeline
from campaign_etl.shared import RunState, build_run_summary, write_run_report
from campaign_etl.sinks import NullSink, PostgresSink, Sink, SupabaseSink, connect_postgres
from campaign_etl.validate import Strictness


# ---------------------------------------------------------------------------
# Sink selection
# ---------------------------------------------------------------------------

def _build_sink(
    mode: str,
    settings: Settings,
    db_dsn: str | None,
    dry_run: bool,
    run_id: str,
) -> Sink:
    if mode == "validate":
        return NullSink()

    if settings.sink == "postgres":
        if not db_dsn:
            click.echo(f"[{run_id}] FATAL: --db-dsn is required for the postgres sink", err=True)
            sys.exit(1)
        try:
            conn = connect_postgres(db_dsn, settings.sink_timeout_seconds)
        except psycopg.Error as exc:
            click.echo(f"[{run_id}] FATAL: cannot connect to database: {exc}", err=True)
            sys.exit(1)
        return PostgresSink(conn, dry_run=dry_run)

    if dry_run:
        click.echo(f"[{run_id}] [dry-run] supabase writes skipped.")
        return NullSink()

    # Read credentials from env - never from CLI args
    url = os.environ.get(settings.supabase_url_env, "")
    key = os.environ.get(settings.supabase_key_env, "")
    if not url or not key:
        click.echo(
            f"[{run_id}] FATAL: env vars {settings.supabase_url_env} and "
            f"{settings.supabase_key_env} must be set",
            err=True,
        )
        sys.exit(1)
    return SupabaseSink(url, key, timeout=settings.sink_timeout_seconds)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option(
    "--mode",
    default="import",
    type=click.Choice(["validate", "import"]),
    show_default=True,
)
@click.option("--csv-path", required=True, type=click.Path(), help="Input campaign CSV")
@click.option("--config", "config_path", default=None, type=click.Path(), help="YAML run configuration")
@click.option("--batch-size", default=None, type=int, help="Metric rows per sink flush [default: 500]")
@click.option(
    "--strictness",
    default=None,
    type=click.Choice(["strict", "lenient"]),
    help="Validation mode [default: strict for validate, lenient for import]",
)
@click.option("--no-header", is_flag=True, default=False, help="Input has no header row; canonical column order assumed")
@click.option("--errors-dir", default=None, type=click.Path(), help="Directory for the error report [default: errors]")
@click.option("--sink", default=None, type=click.Choice(["postgres", "supabase"]), help="[import] Storage sink [default: postgres]")
@click.option("--db-dsn", default=None, help="[import/postgres] PostgreSQL DSN")
@click.option("--supabase-url-env", default=None, help="[import/supabase] Env var name holding the Supabase URL")
@click.option("--supabase-key-env", default=None, help="[import/supabase] Env var name holding the service key")
@click.option("--sink-timeout", default=None, type=float, help="Seconds before a sink call is abandoned [default: 30]")
@click.option("--reports-dir", default="./artifacts/reports", type=click.Path(), show_default=True)
@click.option("--dry-run", is_flag=True, default=False)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--verbose", is_flag=True, default=False, help="Log batch flushes and sink calls")
def main(
    mode: str,
    csv_path: str,
    config_path: str | None,
    batch_size: int | None,
    strictness: str | None,
    no_header: bool,
    errors_dir: str | None,
    sink: str | None,
    db_dsn: str | None,
    supabase_url_env: str | None,
    supabase_key_env: str | None,
    sink_timeout: float | None,
    reports_dir: str,
    dry_run: bool,
    run_id: str | None,
    verbose: bool,
) -> None:
    """Campaign performance CSV validation and import CLI."""
    run_id = run_id or str(uuid.uuid4())
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(Path(config_path) if config_path else None)
        settings = settings.override(
            batch_size=batch_size,
            strictness=Strictness(strictness) if strictness else None,
            has_header=False if no_header else None,
            errors_dir=Path(errors_dir) if errors_dir else None,
            sink=sink,
            sink_timeout_seconds=sink_timeout,
            supabase_url_env=supabase_url_env,
            supabase_key_env=supabase_key_env,
        )
    except (SettingsValidationError, OSError) as exc:
        click.echo(f"[{run_id}] FATAL: bad configuration: {exc}", err=True)
        sys.exit(1)
    if settings.batch_size < 1:
        click.echo(f"[{run_id}] FATAL: --batch-size must be >= 1", err=True)
        sys.exit(1)

    effective_strictness = settings.strictness or (
        Strictness.STRICT if mode == "validate" else Strictness.LENIENT
    )
    click.echo(
        f"[{run_id}] Starting {mode} run "
        f"(strictness={effective_strictness.value}, dry_run={dry_run})"
    )

    target = _build_sink(mode, settings, db_dsn, dry_run, run_id)
    state = RunState()
    try:
        run_pipeline(
            iter_csv_lines(Path(csv_path)),
            target,
            settings.errors_dir,
            batch_size=settings.batch_size,
            strictness=effective_strictness,
            has_header=settings.has_header,
            state=state,
        )
    except SourceFailure as exc:
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        sys.exit(1)
    finally:
        close = getattr(target, "close", None)
        if close is not None:
            close()

    click.echo(build_run_summary(state, mode, dry_run))
    if state.error_report_path:
        click.echo(f"[{run_id}] Errors written to {state.error_report_path}")
    else:
        click.echo(f"[{run_id}] No errors found")
    if dry_run and mode == "import":
        click.echo(f"[{run_id}] [dry-run] All changes rolled back.")

    report_path = write_run_report(
        run_id, mode, dry_run,
        {"csv_path": csv_path},
        state,
        reports_dir=Path(reports_dir),
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    if mode == "import" and state.batch_errors > 0:
        click.echo(
            f"[{run_id}] {state.batch_errors} batch(es) failed - exiting non-zero",
            err=True,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
