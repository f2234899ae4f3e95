"""Command line interface for linkstash."""

from __future__ import annotations

import json
import signal
import sys
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import typer
from loguru import logger

from .classifier import classify
from .config import AppConfig, load_config
from .config.inspector import check_config, explain_config
from .config.utils import describe_secret
from .errors import GenerationError, LinkstashError
from .models import ContentKind, Item, SharedPayload
from .stash import Stash
from .sync import SyncScheduler


@dataclass(slots=True)
class CLIState:
    """Holds shared state between Typer commands."""

    config_path: Path
    _config: AppConfig | None = None
    _stash: Stash | None = None

    def ensure_config(self) -> AppConfig:
        if self._config is None:
            logger.debug("Loading configuration from {}", self.config_path)
            self._config = load_config(AppConfig, self.config_path)
            _configure_logging(self._config.logging_level)
        return self._config

    def ensure_stash(self) -> Stash:
        if self._stash is None:
            self._stash = Stash(self.ensure_config())
        return self._stash

    def close(self) -> None:
        if self._stash is not None:
            self._stash.close()
            self._stash = None


app = typer.Typer(help="Save links, tweets, videos and notes; enrich them and keep them in sync")
config_app = typer.Typer(help="Validate and document configuration files")
app.add_typer(config_app, name="config")
space_app = typer.Typer(help="Organise items into spaces")
app.add_typer(space_app, name="space")

_console_sink_id: int | None = None


def _configure_logging(level: str) -> None:
    global _console_sink_id
    if _console_sink_id is None:
        try:
            logger.remove(0)
        except ValueError:
            pass
    else:
        logger.remove(_console_sink_id)
    # resolve sys.stderr at write time so redirected streams are honoured
    _console_sink_id = logger.add(lambda message: sys.stderr.write(message), level=level.upper())


def _default_config_path() -> Path:
    repo_root = Path(__file__).resolve().parents[1]
    return repo_root / "config" / "example.toml"


def _normalize_format(value: str) -> str:
    return value.lower()


def _format_option(help_text: str) -> Any:
    return typer.Option("text", "--format", case_sensitive=False, help=help_text, callback=_normalize_format)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):  # pragma: no cover - defensive guard
        raise RuntimeError("CLI context is not initialised")
    return state


def _exit(code: int) -> None:
    raise typer.Exit(code)


def _stash(ctx: typer.Context) -> Stash:
    state = _get_state(ctx)
    try:
        return state.ensure_stash()
    except FileNotFoundError as exc:
        logger.error("{}", exc)
        _exit(2)
        raise  # pragma: no cover - _exit always raises


def _item_summary(item: Item) -> str:
    tags = f" [{', '.join(item.tags)}]" if item.tags else ""
    return f"{item.id}  {item.content_type.value:<13} {item.title}{tags}"


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    config: Path = typer.Option(
        _default_config_path(),
        help="Path to the TOML configuration file",
    ),
) -> None:
    """Initialise CLI state."""

    state = CLIState(config_path=config.resolve())
    ctx.obj = state
    ctx.call_on_close(state.close)

    if ctx.invoked_subcommand is None:
        logger.warning("No command provided. Try 'save URL', 'list' or 'status'.")
        _exit(0)


@app.command("classify", help="Show the content kind a URL or text maps to")
def classify_command(text: str = typer.Argument(..., help="URL or free text")) -> None:
    print(classify(text).value)


@app.command(help="Extract metadata for a URL without saving it")
def extract(ctx: typer.Context, url: str = typer.Argument(..., help="URL to inspect")) -> None:
    envelope = _stash(ctx).extract_metadata(url)
    _print_json(envelope.to_dict())
    if envelope.error:
        _exit(1)


@app.command(help="Save a URL (malformed input is stored as a note)")
def save(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="URL to save"),
    text: str | None = typer.Option(None, "--text", help="Accompanying shared text"),
    space: list[str] = typer.Option(None, "--space", help="Space id to add the item to (repeatable)"),
    no_auto: bool = typer.Option(False, "--no-auto", help="Skip automatic transcript/description/tag jobs"),
) -> None:
    stash = _stash(ctx)
    try:
        if text:
            item = stash.save_shared(SharedPayload(url=url, text=text), space_ids=space or [])
        else:
            item = stash.save_url(url, space_ids=space or [], auto_generate=not no_auto)
    except LinkstashError as exc:
        logger.error("Could not save {}: {}", url, exc)
        _exit(1)
        return
    logger.info("Saved {} as {}", item.id, item.content_type.value)
    print(_item_summary(item))


@app.command(help="Add a plain-text note")
def note(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Note body"),
    title: str | None = typer.Option(None, "--title", help="Optional title"),
    space: list[str] = typer.Option(None, "--space", help="Space id to add the note to (repeatable)"),
) -> None:
    try:
        item = _stash(ctx).add_note(text, title=title, space_ids=space or [])
    except LinkstashError as exc:
        logger.error("Could not add note: {}", exc)
        _exit(1)
        return
    print(_item_summary(item))


@app.command("list", help="List saved items, newest first")
def list_items(
    ctx: typer.Context,
    content_type: str | None = typer.Option(None, "--type", help="Only items of this content type"),
    space: str | None = typer.Option(None, "--space", help="Only items in this space"),
    query: str | None = typer.Option(None, "--query", help="Case-insensitive text filter"),
    archived: bool = typer.Option(False, "--archived", help="Include archived items"),
    format: str = _format_option("Output format"),  # noqa: A002 - match CLI option name
) -> None:
    if content_type is not None and content_type not in {kind.value for kind in ContentKind}:
        logger.error("Unknown content type '{}'", content_type)
        _exit(2)
    items = _stash(ctx).list_items(
        content_type=content_type,
        space_id=space,
        query=query,
        include_archived=archived,
    )
    if format == "json":
        _print_json([item.to_record() for item in items])
        return
    for item in items:
        print(_item_summary(item))
    logger.info("{} item(s)", len(items))


@app.command(help="Show one item with its metadata and artefacts")
def show(ctx: typer.Context, item_id: str = typer.Argument(...)) -> None:
    stash = _stash(ctx)
    item = stash.get_item(item_id)
    if item is None:
        logger.error("Item {} not found", item_id)
        _exit(1)
        return
    type_metadata = stash.store.get_type_metadata(item_id)
    item_metadata = stash.store.get_item_metadata(item_id)
    transcript = stash.get_transcript(item_id)
    _print_json(
        {
            "item": item.to_record(),
            "spaces": stash.store.space_ids_for_item(item_id),
            "type_metadata": type_metadata.to_record() if type_metadata else None,
            "metadata": item_metadata.to_record() if item_metadata else None,
            "transcript": transcript.to_record() if transcript else None,
            "image_descriptions": [d.to_record() for d in stash.get_image_descriptions(item_id)],
        }
    )


@app.command(help="Edit item fields; the change is queued for sync")
def edit(
    ctx: typer.Context,
    item_id: str = typer.Argument(...),
    title: str | None = typer.Option(None, "--title"),
    desc: str | None = typer.Option(None, "--desc"),
    content_type: str | None = typer.Option(None, "--type"),
    notes: str | None = typer.Option(None, "--notes"),
    tag: list[str] = typer.Option(None, "--tag", help="Replace tags (repeatable)"),
    archive: bool | None = typer.Option(None, "--archive/--unarchive"),
) -> None:
    changes: dict[str, Any] = {}
    for name, value in (("title", title), ("desc", desc), ("content_type", content_type), ("notes", notes)):
        if value is not None:
            changes[name] = value
    if tag:
        changes["tags"] = list(tag)
    if archive is not None:
        changes["is_archived"] = archive
    if not changes:
        logger.warning("Nothing to change")
        _exit(2)
    try:
        item = _stash(ctx).update_item_with_sync(item_id, changes)
    except LinkstashError as exc:
        logger.error("Could not update {}: {}", item_id, exc)
        _exit(1)
        return
    print(_item_summary(item))


@app.command(help="Delete an item with its memberships and artefacts")
def delete(ctx: typer.Context, item_id: str = typer.Argument(...)) -> None:
    if not _stash(ctx).delete_item_with_sync(item_id):
        logger.error("Item {} not found", item_id)
        _exit(1)
    logger.info("Deleted {}", item_id)


@app.command(help="Re-extract metadata for a saved URL")
def refresh(ctx: typer.Context, item_id: str = typer.Argument(...)) -> None:
    try:
        item = _stash(ctx).refresh_metadata(item_id)
    except LinkstashError as exc:
        logger.error("Could not refresh {}: {}", item_id, exc)
        _exit(1)
        return
    print(_item_summary(item))


@space_app.command("create")
def space_create(
    ctx: typer.Context,
    name: str = typer.Argument(...),
    color: str | None = typer.Option(None, "--color"),
    description: str | None = typer.Option(None, "--description"),
) -> None:
    try:
        space = _stash(ctx).create_space(name, color=color, description=description)
    except LinkstashError as exc:
        logger.error("Could not create space: {}", exc)
        _exit(1)
        return
    print(f"{space.id}  {space.name}")


@space_app.command("list")
def space_list(ctx: typer.Context) -> None:
    stash = _stash(ctx)
    for space in stash.list_spaces():
        count = len(stash.store.item_ids_in_space(space.id))
        print(f"{space.id}  {space.name} ({count})")


@space_app.command("add")
def space_add(ctx: typer.Context, item_id: str = typer.Argument(...), space_id: str = typer.Argument(...)) -> None:
    try:
        _stash(ctx).add_item_to_space(item_id, space_id)
    except LinkstashError as exc:
        logger.error("{}", exc)
        _exit(1)


@space_app.command("remove")
def space_remove(ctx: typer.Context, item_id: str = typer.Argument(...), space_id: str = typer.Argument(...)) -> None:
    if not _stash(ctx).remove_item_from_space(item_id, space_id):
        logger.warning("Item {} is not in space {}", item_id, space_id)


@space_app.command("delete")
def space_delete(ctx: typer.Context, space_id: str = typer.Argument(...)) -> None:
    if not _stash(ctx).delete_space(space_id):
        logger.error("Space {} not found", space_id)
        _exit(1)


@app.command(help="Fetch or generate a transcript for a video item")
def transcript(
    ctx: typer.Context,
    item_id: str = typer.Argument(...),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds to wait before giving up"),
) -> None:
    try:
        record = _stash(ctx).generate_transcript(
            item_id,
            on_progress=lambda update: logger.info("Transcription {}: {}", update.status, update.message),
            timeout=timeout,
        )
    except LinkstashError as exc:
        logger.error("Transcript unavailable: {}", exc)
        _exit(1)
        return
    print(record.transcript)


@app.command("describe-images", help="Describe the images attached to an item")
def describe_images(ctx: typer.Context, item_id: str = typer.Argument(...)) -> None:
    try:
        descriptions = _stash(ctx).generate_image_descriptions(item_id)
    except LinkstashError as exc:
        logger.error("Image descriptions unavailable: {}", exc)
        _exit(1)
        return
    for description in descriptions:
        print(f"{description.image_url}\n  {description.description}")


@app.command(help="Suggest tags for an item and merge them in")
def tags(ctx: typer.Context, item_id: str = typer.Argument(...)) -> None:
    try:
        merged = _stash(ctx).generate_tags(item_id)
    except GenerationError as exc:
        logger.error("Tag generation failed: {}", exc)
        _exit(1)
        return
    except LinkstashError as exc:
        logger.error("{}", exc)
        _exit(1)
        return
    print(", ".join(merged))


@app.command(help="Summarize an item into a short TLDR")
def tldr(ctx: typer.Context, item_id: str = typer.Argument(...)) -> None:
    try:
        summary = _stash(ctx).generate_tldr(item_id)
    except LinkstashError as exc:
        logger.error("TLDR generation failed: {}", exc)
        _exit(1)
        return
    print(summary)


@app.command(help="Replay pending operations against the remote store")
def sync(
    ctx: typer.Context,
    pull: bool = typer.Option(False, "--pull", help="Also import remote rows missing locally"),
    retry: bool = typer.Option(False, "--retry", help="Ignore backoff timers for failed operations"),
) -> None:
    stash = _stash(ctx)
    if retry:
        stash.sync.outbox.retry_now()
    report = stash.sync_now(pull=pull)
    for error in report.errors:
        logger.warning("  - {}", error)
    status_info = stash.sync_status()
    logger.info("Pending operations: {}", status_info.pending)
    if report.failed:
        _exit(1)


@app.command(help="Show configuration, store and sync status")
def status(
    ctx: typer.Context,
    format: str = _format_option("Output format"),  # noqa: A002 - match CLI option name
) -> None:
    stash = _stash(ctx)
    sync_status = stash.sync_status()
    payload = {
        "data_root": str(stash.config.data_root),
        "counts": stash.store.counts(),
        "sync": asdict(sync_status),
        "generating": stash.tracker.snapshot(),
    }
    if format == "json":
        _print_json(payload)
        return
    _report_system_status(stash.config, payload)


@app.command(help="Run background sync and the periodic replay scheduler until interrupted")
def serve(
    ctx: typer.Context,
    dry_run: bool = typer.Option(False, help="Set up the scheduler and report jobs without running"),
) -> None:
    stash = _stash(ctx)
    config = stash.config
    scheduler = SyncScheduler(config.scheduler, stash.sync, log_dir=config.resolve_path(Path("logs")), dry_run=dry_run)
    scheduler.setup_jobs()
    if dry_run:
        logger.info("[Dry Run] Sync worker will not be started.")
        scheduler.shutdown()
        return

    stopped = threading.Event()

    def _handle_signal(signum: int, frame: Any) -> None:
        logger.info("Received signal {}, shutting down", signum)
        stopped.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    stash.start_background_sync()
    scheduler.start()
    try:
        stopped.wait()
    finally:
        scheduler.shutdown()


@config_app.command(help="Validate the configuration file")
def check(
    ctx: typer.Context,
    format: str = _format_option("Output format for validation results"),  # noqa: A002 - match CLI option name
) -> None:
    state = _get_state(ctx)
    result, exit_code, _ = check_config(state.config_path)

    if format == "json":
        _print_json(result)
        _exit(exit_code)

    if result["status"] == "ok":
        logger.info("Configuration OK: {}", result["config_path"])
        for warning in result["warnings"]:
            logger.warning(warning)
    else:
        error: dict[str, Any] = result["error"]
        logger.error("Configuration error ({}) for {}: {}", error["type"], result["config_path"], error["message"])
        for detail in error.get("details", []):
            logger.error("  - {}: {} ({})", detail["loc"] or "<root>", detail["message"], detail["type"])

    _exit(exit_code)


@config_app.command(help="Describe available configuration fields")
def explain(
    format: str = _format_option("Output format for configuration schema"),  # noqa: A002 - match CLI option name
) -> None:
    fields = explain_config()

    if format == "json":
        _print_json({"fields": fields})
        return

    logger.info("Configuration schema ({} fields):", len(fields))
    for field in fields:
        default_value = field["default"]
        if isinstance(default_value, (dict, list)):
            default_repr = json.dumps(default_value, ensure_ascii=False, default=str)
        else:
            default_repr = str(default_value)
        logger.info(
            "  - {name}: type={type}, required={required}, default={default}, description={description}",
            name=field["name"],
            type=field["type"],
            required="yes" if field["required"] else "no",
            default=default_repr,
            description=field["description"] or "(no description)",
        )


def _report_system_status(config: AppConfig, payload: dict[str, Any]) -> None:
    """Log configuration, store and sync state section by section."""

    logger.info("=== General Configuration ===")
    logger.info("Data root: {}", config.data_root)
    logger.info("Logging level: {}", config.logging_level)

    logger.info("=== Extraction ===")
    extraction = config.extraction
    logger.info("Extractor order: {}", ", ".join(extraction.extractor_order) or "(reader only)")
    logger.info("X bearer token: {}", describe_secret(extraction.x.bearer_token))
    logger.info("Reader: {}", extraction.reader.base_url)

    logger.info("=== Local Store ===")
    for table, count in payload["counts"].items():
        logger.info("{}: {}", table, count)

    logger.info("=== Sync ===")
    sync_info = payload["sync"]
    logger.info("Backend: {} (enabled={})", config.sync.backend, config.sync.enabled)
    logger.info("Pending: {}, failed: {}", sync_info["pending"], sync_info["failed"])
    logger.info("Last sync: {}", sync_info["last_sync_time"] or "never")
    if sync_info["last_error"]:
        logger.warning("Last error: {}", sync_info["last_error"])

    logger.info("=== Enrichment ===")
    enrichment = config.enrichment
    logger.info("Vision model: {}", enrichment.vision_model or "not configured")
    logger.info("Tag model: {}", enrichment.tag_model or "not configured")
    logger.info("TLDR model: {}", enrichment.tldr_model or enrichment.tag_model or "not configured")
    logger.info("AssemblyAI key: {}", describe_secret(enrichment.assemblyai.api_key))
    running = {kind: ids for kind, ids in payload["generating"].items() if ids}
    logger.info("Running jobs: {}", running or "none")


def main(argv: list[str] | None = None) -> int:
    """Entry point compatible with setuptools console scripts."""

    try:
        result = app(args=argv, standalone_mode=False)
    except typer.Exit as exc:  # pragma: no cover - Typer translates exit codes
        return exc.exit_code
    if isinstance(result, int):
        return result
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
