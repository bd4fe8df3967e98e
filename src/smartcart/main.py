"""CLI entry point for inspecting the SmartCart offline cache."""

import asyncio
import os
from pathlib import Path
from typing import Annotated, Any

import typer

from .cache_store import BackendType, CacheKeys, CacheStoreProtocol, create_cache_store
from .config import ConfigManager
from .errors import ErrorCode
from .logging import parse_level, set_log_level
from .output_formatter import OutputFormatter
from .sync_engine import clear_cached_collections

app = typer.Typer(
    name="smartcart",
    help="Inspect and maintain the SmartCart offline cache",
    no_args_is_help=True,
)

# Global state for formatter and store (set by callback)
formatter: OutputFormatter = OutputFormatter()
config: ConfigManager | None = None
store: CacheStoreProtocol | None = None
backend_type: BackendType = BackendType.JSON


def get_store() -> CacheStoreProtocol:
    """Get or create the cache store using config values."""
    global store
    if store is None:
        cfg = config or ConfigManager()
        store = create_cache_store(BackendType(cfg.storage.backend), cache_dir=cfg.storage.cache_dir)
    return store


@app.callback()
def main(
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON for programmatic use")
    ] = False,
    cache_dir: Annotated[
        Path | None, typer.Option("--cache-dir", help="Cache directory path")
    ] = None,
    backend: Annotated[
        BackendType | None, typer.Option("--backend", help="Cache storage backend")
    ] = None,
) -> None:
    """SmartCart CLI - look inside the offline cache and pending changes."""
    global formatter, config, store, backend_type

    formatter = OutputFormatter(json_mode=json_output)
    config = ConfigManager()
    # SMARTCART_LOG_LEVEL overrides the config file
    set_log_level(parse_level(os.environ.get("SMARTCART_LOG_LEVEL") or config.logging.level))

    # CLI options override config, which overrides defaults
    backend_type = backend or BackendType(config.storage.backend)
    effective_cache_dir = cache_dir if cache_dir else config.storage.cache_dir
    store = create_cache_store(backend=backend_type, cache_dir=effective_cache_dir)


def _record_count(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, list):
        return len(value)
    return 1


def _collection_of(key: str) -> str:
    if key.startswith(CacheKeys.TRIP_ITEMS_PREFIX):
        return "trip_items"
    return key


async def _status(cache: CacheStoreProtocol) -> dict[str, Any]:
    entries = []
    for key in await cache.keys():
        entries.append(
            {
                "key": key,
                "collection": _collection_of(key),
                "records": _record_count(await cache.get(key)),
            }
        )
    return {
        "backend": backend_type.value,
        "location": str(cache.location),
        "queue_size": await cache.queue_size(),
        "entries": entries,
    }


@app.command()
def status() -> None:
    """Show cached collections and the number of pending changes."""
    try:
        summary = asyncio.run(_status(get_store()))
        formatter.output({"success": True, "data": {"status": summary}})
    except Exception as e:
        formatter.error(str(e), error_code=ErrorCode.STORAGE_ERROR.value)
        raise typer.Exit(code=1)


@app.command()
def queue() -> None:
    """List pending changes, oldest first."""
    try:
        mutations = asyncio.run(get_store().list_queued_mutations())
        formatter.output(
            {"success": True, "data": {"queue": [m.model_dump(mode="json") for m in mutations]}}
        )
    except Exception as e:
        formatter.error(str(e), error_code=ErrorCode.STORAGE_ERROR.value)
        raise typer.Exit(code=1)


async def _drop(cache: CacheStoreProtocol, mutation_id: str) -> bool:
    queued = {m.id for m in await cache.list_queued_mutations()}
    if mutation_id not in queued:
        return False
    await cache.dequeue_mutation(mutation_id)
    return True


@app.command()
def drop(
    mutation_id: Annotated[str, typer.Argument(help="ID of the pending change to discard")],
) -> None:
    """Discard a pending change without replaying it."""
    try:
        dropped = asyncio.run(_drop(get_store(), mutation_id))
    except Exception as e:
        formatter.error(str(e), error_code=ErrorCode.STORAGE_ERROR.value)
        raise typer.Exit(code=1)

    if not dropped:
        formatter.error(f"Pending change not found: {mutation_id}", error_code=ErrorCode.NOT_FOUND.value)
        raise typer.Exit(code=1)
    formatter.success(f"Dropped {mutation_id}", {"id": mutation_id})


@app.command()
def show(
    key: Annotated[str, typer.Argument(help="Cache key, e.g. retailers or trip_items_<trip id>")],
) -> None:
    """Print a cached entry."""
    try:
        value = asyncio.run(get_store().get(key))
    except Exception as e:
        formatter.error(str(e), error_code=ErrorCode.STORAGE_ERROR.value)
        raise typer.Exit(code=1)

    if value is None:
        formatter.error(f"No cached entry for {key}", error_code=ErrorCode.NO_CACHED_DATA.value)
        raise typer.Exit(code=1)
    formatter.output({"success": True, "data": {"entry": {"key": key, "value": value}}})


@app.command(name="clear-cache")
def clear_cache(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Remove cached collections. Pending changes are kept."""
    if not yes and not formatter.json_mode:
        typer.confirm("Clear all cached collections?", abort=True)

    try:
        removed = asyncio.run(clear_cached_collections(get_store()))
    except Exception as e:
        formatter.error(str(e), error_code=ErrorCode.STORAGE_ERROR.value)
        raise typer.Exit(code=1)
    formatter.success(f"Cleared {len(removed)} cached entries", {"removed": removed})


if __name__ == "__main__":
    app()
