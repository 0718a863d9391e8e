"""
City League results pipeline: CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute the action against the document store.
  5. Report the result to stdout.

Install and run::

    pip install -e .
    playwright install chromium
    cityleague --help
    cityleague init-db
    cityleague validate-config
    cityleague auto-run --date 20250307
    cityleague latest-run
    cityleague build-snapshots --date 20250307
    cityleague summary --date 20250307
    cityleague podium-targets 20250307-open
    cityleague curate-decks 20250307-open --file names.json
    cityleague deck-names --all
    cityleague add-deck-name "Some Deck"
    cityleague set-deck-name-active "Some Deck" --inactive
    cityleague work-months
    cityleague work-days --month 2025-03
    cityleague recompute-summaries --scope daily --date 2025-03-07
    cityleague purge-data --dry-run
    cityleague start-scheduler --daily-time 06:00
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from cityleague_pipeline.taxonomy.categories import SummaryScope

app = typer.Typer(
    name="cityleague",
    help="City League tournament results pipeline.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from cityleague_pipeline.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from cityleague_pipeline.utils.logging import configure_logging
    configure_logging(config.logging)


def _open_store(config, db_path: Optional[str]):
    """Context manager yielding a ``DocumentStore`` with the schema applied."""
    from contextlib import contextmanager

    from cityleague_pipeline.db.connection import get_connection
    from cityleague_pipeline.db.schema import apply_schema
    from cityleague_pipeline.db.store import DocumentStore

    @contextmanager
    def _store():
        with get_connection(
            db_path or config.database.db_path,
            wal_mode=config.database.wal_mode,
            busy_timeout_ms=config.database.busy_timeout_ms,
        ) as conn:
            apply_schema(conn)
            yield DocumentStore(conn)

    return _store()


def _validate_date_or_exit(date_key: str) -> str:
    from cityleague_pipeline.errors import InvalidTargetDateError
    from cityleague_pipeline.utils.time_utils import parse_date_key, to_date_key

    try:
        return to_date_key(parse_date_key(date_key))
    except InvalidTargetDateError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


def _echo_record(record) -> None:
    typer.echo(f"  id:          {record.id}")
    typer.echo(f"  status:      {record.status.value}")
    typer.echo(f"  phase:       {record.phase.value}")
    typer.echo(f"  target:      {record.target_date_key or '-'} ({record.target_date_label or '-'})")
    typer.echo(f"  started_at:  {record.started_at.isoformat()}")
    if record.ended_at:
        typer.echo(f"  ended_at:    {record.ended_at.isoformat()}")
    if record.duration_human:
        typer.echo(f"  duration:    {record.duration_human}")
    if record.error:
        typer.echo(f"  error:       {record.error}")


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite document store.

    Safe to run multiple times; all DDL uses IF NOT EXISTS.
    """
    from cityleague_pipeline.db.schema import ALL_COLLECTIONS

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with _open_store(config, target_path):
        pass

    typer.echo(f"  Collections: {', '.join(ALL_COLLECTIONS)}")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Listing URL:      {config.source.listing_url}")
    typer.echo(f"  Results API:      {config.source.results_api_url}")
    typer.echo(f"  Allowed ranks:    {', '.join(str(r) for r in config.acquisition.allowed_ranks)}")
    typer.echo(f"  Probe pages:      {config.probe.max_pages} x {config.probe.page_step}")
    typer.echo(f"  UTC offset:       +{config.orchestrator.utc_offset_hours}h")
    typer.echo(f"  Slack webhook:    {'set' if config.notify.slack_webhook_url else 'not set'}")
    typer.echo(f"  Scraper enabled:  {config.scraper_enabled}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("auto-run")
def auto_run(
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Target day as YYYYMMDD. Invalid or omitted → previous day (UTC+9).",
    ),
    force_rankings: bool = typer.Option(
        False,
        "--force-rankings",
        help="Re-acquire rankings for already collected events.",
    ),
    background: bool = typer.Option(
        False,
        "--background",
        help="Start through the trigger and print the acknowledgement first.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Run probe → rankings → snapshots → summary → notify for one day.

    \b
    Steps:
      1. Probe          : discover the day's events on the results listing.
      2. Collect        : acquire rankings through the api/browser/html ladder.
      3. BuildSnapshots : rebuild the per-category daily snapshots.
      4. Summary        : recount events/rankings and notify Slack.

    With --background the run is started on a worker thread, the execution
    id is printed immediately, and the command then waits for it to end.
    """
    from cityleague_pipeline.errors import ScraperDisabledError
    from cityleague_pipeline.pipeline.orchestrator import AutoRunOrchestrator
    from cityleague_pipeline.taxonomy.categories import ExecutionStatus
    from cityleague_pipeline.trigger import RunTrigger

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    typer.echo(f"auto-run | date={date or '(previous day)'} | force_rankings={force_rankings}")

    if background:
        trigger = RunTrigger(config, db_path=db_path)
        try:
            ack = trigger.trigger(date_override=date, force_rankings=force_rankings)
        except ScraperDisabledError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"  accepted={ack.accepted} execution_id={ack.execution_id} mode={ack.mode}")
        trigger.join()
        record = trigger.get(ack.execution_id)
    else:
        if not config.scraper_enabled:
            typer.echo("[ERROR] Scraper is disabled (scraper_enabled = false).", err=True)
            raise typer.Exit(code=1)
        with _open_store(config, db_path) as store:
            record = AutoRunOrchestrator(config, store).run(
                date_override=date, force_rankings=force_rankings
            )

    if record is None:
        typer.echo("[ERROR] No execution record found.", err=True)
        raise typer.Exit(code=1)

    _echo_record(record)
    typer.echo("")
    if record.status == ExecutionStatus.ERROR:
        typer.echo(f"[FAILED] auto-run ended in error: {record.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo("[OK] auto-run finished.")


@app.command("latest-run")
def latest_run(
    show_logs: bool = typer.Option(
        False,
        "--logs",
        help="Print the run log lines.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Show the most recent ExecutionRecord."""
    from cityleague_pipeline.trigger import RunTrigger

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    record = RunTrigger(config, db_path=db_path).latest()
    if record is None:
        typer.echo("No runs recorded yet.")
        return

    _echo_record(record)
    if show_logs:
        typer.echo("")
        for line in record.logs:
            typer.echo(f"  | {line}")


@app.command("build-snapshots")
def build_snapshots(
    date: str = typer.Option(
        ...,
        "--date",
        help="Target day as YYYYMMDD.",
    ),
    force: bool = typer.Option(
        True,
        "--force/--no-force",
        help="Rebuild snapshots that already exist.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Rebuild the daily snapshots for one day from stored rankings."""
    from cityleague_pipeline.acquisition.deck import DeckImageResolver
    from cityleague_pipeline.pipeline.snapshots import SnapshotStage

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    date_key = _validate_date_or_exit(date)

    typer.echo(f"build-snapshots | date={date_key} | force={force}")
    with _open_store(config, db_path) as store, DeckImageResolver.from_config(config) as resolver:
        result = SnapshotStage(config, store, resolver).run(date_key=date_key, force=force)

    for outcome in result.outcomes:
        typer.echo(f"  {outcome.snapshot_id:<20} {outcome.status.value:<17} rankings={outcome.count}")
    typer.echo("")
    typer.echo(f"[OK] {result.written} snapshot(s) written.")


@app.command("summary")
def summary(
    date: str = typer.Option(
        ...,
        "--date",
        help="Target day as YYYYMMDD.",
    ),
    notify: bool = typer.Option(
        False,
        "--notify",
        help="Also send the summary to the configured Slack webhook.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Print event and ranking totals for one day."""
    from cityleague_pipeline.notifier import SlackNotifier, format_summary_message
    from cityleague_pipeline.pipeline.summary import collect_summary_counts
    from cityleague_pipeline.utils.time_utils import date_key_to_label, site_now

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    date_key = _validate_date_or_exit(date)

    with _open_store(config, db_path) as store:
        counts = collect_summary_counts(
            store,
            date_key,
            league_type=config.probe.league_type,
            retry=config.retry,
            chunk_size=config.snapshot.in_chunk_size,
        )

    message = format_summary_message(
        date_key_to_label(date_key), counts, site_now(config.orchestrator.utc_offset_hours)
    )
    typer.echo(message)

    if notify:
        sent = SlackNotifier.from_config(config.notify).send(message)
        typer.echo("")
        typer.echo("[OK] Notification sent." if sent else "[WARN] Notification not sent.")


@app.command("podium-targets")
def podium_targets(
    snapshot_id: str = typer.Argument(..., help="Snapshot id, e.g. 20250307-open."),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """List the rank 1-3 decks of a snapshot awaiting curated names."""
    from cityleague_pipeline.curation.deck_names import DeckNameCurator
    from cityleague_pipeline.errors import SnapshotNotFoundError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config, db_path) as store:
        try:
            targets = DeckNameCurator(config, store).podium_targets(snapshot_id)
        except SnapshotNotFoundError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    for t in targets:
        typer.echo(f"  {t.group_id:<40} rank={t.rank} name={t.deck_name or '-'}")
    typer.echo(f"[OK] {len(targets)} podium target(s).")


@app.command("curate-decks")
def curate_decks(
    snapshot_id: str = typer.Argument(..., help="Snapshot id, e.g. 20250307-open."),
    items_file: str = typer.Option(
        ...,
        "--file",
        "-f",
        help='JSON array of {"group_id": ..., "deck_name": ...} objects.',
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Apply curated deck names to a snapshot's podium entries.

    Partial success: invalid items are listed as errors, valid ones applied.
    """
    from pydantic import ValidationError

    from cityleague_pipeline.curation.deck_names import DeckNameCurator
    from cityleague_pipeline.errors import SnapshotNotFoundError
    from cityleague_pipeline.models.curation import DeckNameUpdate

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    path = Path(items_file)
    try:
        with open(path, encoding="utf-8") as f:
            raw_items = json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        typer.echo(f"[ERROR] Could not read {path}: {exc}", err=True)
        raise typer.Exit(code=1)

    if not isinstance(raw_items, list):
        typer.echo("[ERROR] Items file must contain a JSON array.", err=True)
        raise typer.Exit(code=1)

    try:
        items = [
            DeckNameUpdate(
                group_id=str(raw.get("group_id") or ""),
                deck_name=str(raw.get("deck_name") or ""),
            )
            for raw in raw_items
            if isinstance(raw, dict)
        ]
    except ValidationError as exc:
        typer.echo(f"[ERROR] Invalid items: {exc}", err=True)
        raise typer.Exit(code=1)

    with _open_store(config, db_path) as store:
        try:
            result = DeckNameCurator(config, store).batch_update(snapshot_id, items)
        except SnapshotNotFoundError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    typer.echo(f"  updated={result.updated_count}")
    for gid in result.updated_ids:
        typer.echo(f"    + {gid}")
    for err in result.errors:
        typer.echo(f"    ! {err.group_id or '(blank)'} {err.code}: {err.message}")
    typer.echo("")
    typer.echo("[OK] Curation applied." if result.ok else "[OK] Curation applied with errors.")


@app.command("deck-names")
def deck_names(
    show_all: bool = typer.Option(
        False,
        "--all",
        help="Include deactivated names.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """List the deck-name dictionary in name order."""
    from cityleague_pipeline.curation.deck_names import DeckNameDictionary

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config, db_path) as store:
        entries = DeckNameDictionary(config, store).entries(include_inactive=show_all)

    for e in entries:
        typer.echo(f"  {e.name:<40} {'active' if e.is_active else 'inactive'}")
    typer.echo(f"[OK] {len(entries)} deck name(s).")


@app.command("add-deck-name")
def add_deck_name(
    name: str = typer.Argument(..., help="Deck name to register."),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Register a new active deck name."""
    from cityleague_pipeline.curation.deck_names import DeckNameDictionary
    from cityleague_pipeline.errors import DuplicateDeckNameError, InvalidDeckNameError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config, db_path) as store:
        try:
            entry = DeckNameDictionary(config, store).add(name)
        except (InvalidDeckNameError, DuplicateDeckNameError) as exc:
            typer.echo(f"[ERROR] {exc.code}: {exc}", err=True)
            raise typer.Exit(code=1)

    typer.echo(f"[OK] Added {entry.name}.")


@app.command("set-deck-name-active")
def set_deck_name_active(
    name: str = typer.Argument(..., help="Registered deck name."),
    active: bool = typer.Option(
        ...,
        "--active/--inactive",
        help="Offer the name to curators, or hide it.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Activate or deactivate a dictionary name."""
    from cityleague_pipeline.curation.deck_names import DeckNameDictionary
    from cityleague_pipeline.errors import DeckNameNotFoundError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config, db_path) as store:
        try:
            entry = DeckNameDictionary(config, store).set_active(name, active)
        except DeckNameNotFoundError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    typer.echo(f"[OK] {entry.name}: {'active' if entry.is_active else 'inactive'}.")


@app.command("work-months")
def work_months(
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        help="Maximum months listed (default from config).",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """List curation progress per month, most recently updated first."""
    from cityleague_pipeline.curation.deck_names import DeckNameCurator

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config, db_path) as store:
        months = DeckNameCurator(config, store).work_months(limit)

    for m in months:
        mark = "done" if m.all_complete else "open"
        typer.echo(f"  {m.month} {m.league:<8} {m.completed_days}/{m.total_days} days  {mark}")
    typer.echo(f"[OK] {len(months)} month(s).")


@app.command("work-days")
def work_days(
    month: str = typer.Option(
        ...,
        "--month",
        "-m",
        help="Month as YYYY-MM.",
    ),
    league: Optional[str] = typer.Option(
        None,
        "--league",
        help="League (default from config).",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """List curation progress per day for one month, newest first."""
    from cityleague_pipeline.curation.deck_names import DeckNameCurator
    from cityleague_pipeline.errors import InvalidTargetDateError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config, db_path) as store:
        try:
            days = DeckNameCurator(config, store).work_days(month, league)
        except InvalidTargetDateError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    for d in days:
        mark = "done" if d.all_complete else "open"
        typer.echo(f"  {d.id:<20} {d.completed_targets}/{d.total_targets} named  {mark}")
    typer.echo(f"[OK] {len(days)} day(s).")


@app.command("recompute-summaries")
def recompute_summaries(
    scope: SummaryScope = typer.Option(
        ...,
        "--scope",
        help="daily (one snapshot) or monthly (one month roll-up).",
    ),
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="YYYY-MM-DD for daily, YYYY-MM for monthly (default: previous day / current month).",
    ),
    league: Optional[str] = typer.Option(
        None,
        "--league",
        help="League (default from config).",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Rebuild a curation progress summary."""
    from cityleague_pipeline.curation.deck_names import DeckNameCurator

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config, db_path) as store:
        result = DeckNameCurator(config, store).recompute_summaries(scope, date, league)

    if scope is SummaryScope.DAILY:
        typer.echo(f"  {result.id}: {result.completed_targets}/{result.total_targets} named")
    else:
        typer.echo(f"  {result.id}: {result.completed_days}/{result.total_days} days complete")
    typer.echo("[OK] Summary recomputed.")


@app.command("purge-data")
def purge_data(
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Only count what would be deleted.",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip the confirmation prompt.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Delete all events, rankings, snapshots and run records."""
    from cityleague_pipeline.db.purge import CollectionPurger
    from cityleague_pipeline.db.schema import PURGE_COLLECTIONS

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target = db_path or config.database.db_path
    if not dry_run and not yes:
        typer.confirm(
            f"Delete {', '.join(PURGE_COLLECTIONS)} from {target}?",
            abort=True,
        )

    with _open_store(config, db_path) as store:
        result = CollectionPurger(store, config.database, retry=config.retry).purge(dry_run=dry_run)

    for line in result.logs:
        typer.echo(f"  {line}")
    if dry_run:
        typer.echo(f"[OK] Dry run: {sum(result.found.values())} document(s) would be deleted.")
    else:
        typer.echo(f"[OK] Deleted {result.total_deleted} document(s).")


@app.command("start-scheduler")
def start_scheduler(
    daily_time: Optional[str] = typer.Option(
        None,
        "--daily-time",
        help="Local HH:MM to run auto-run each day (default from config).",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Run auto-run once per day until interrupted."""
    from cityleague_pipeline.config import SchedulerConfig
    from cityleague_pipeline.scheduler import SchedulerDaemon

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        when = SchedulerConfig(daily_time=daily_time).daily_time if daily_time else config.scheduler.daily_time
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    try:
        daemon = SchedulerDaemon(
            db_path=db_path or config.database.db_path,
            daily_time=when,
            config_path=config_path,
        )
    except RuntimeError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"start-scheduler | daily_time={when} | Ctrl-C to stop")
    daemon.start()


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
