"""Command line interface for the lexical diversity toolkit."""

from __future__ import annotations

import asyncio
import dataclasses
import json
from pathlib import Path

import typer

from .cache import DictionaryCache
from .collaborators import JanomeTokenizer
from .config import LexicalConfig, load_config
from .diagnostics import DiagnosticsSuite, render_diagnostics
from .diversifier import DiversificationContext, LexicalDiversifier
from .logging import configure_logging, get_logger
from .store import LexicalStore
from .utils import save_json, seed_everything

LOGGER = get_logger(__name__)

DEFAULT_CACHE_DIR = Path("cache")
SOURCE_ARGUMENT = typer.Argument(..., help="JMdict XML or kaikki JSONL dictionary source.")
CACHE_DIR_OPTION = typer.Option(DEFAULT_CACHE_DIR, help="Directory holding the sharded dictionary cache.")
CONFIG_OPTION = typer.Option(None, help="Path to a YAML or JSON configuration file.")
SOURCE_OPTION = typer.Option(None, help="Dictionary source used when the cache is missing or stale.")
MEMORY_OPTION = typer.Option(None, help="Override the ingestion memory budget in MB.")
MAX_ENTRIES_OPTION = typer.Option(None, help="Override the maximum number of entries to ingest.")
STRENGTHEN_OPTION = typer.Option(True, help="Densify the synonym graph before use.")
LIMIT_OPTION = typer.Option(5, help="Maximum number of synonyms to print.")
POLITENESS_OPTION = typer.Option("standard", help="Register rewrite: standard, formal or casual.")
SEED_OPTION = typer.Option(None, help="Seed for reproducible substitutions.")
OUTPUT_OPTION = typer.Option(None, help="Optional path to write the diagnostics report.")
TABLE_OPTION = typer.Option(False, help="Render diagnostics as a table instead of JSON.")
LOG_LEVEL_OPTION = typer.Option("WARNING", help="Logging level.")

app = typer.Typer(help="Build dictionary caches, look up synonyms and diversify Japanese text.")


@app.callback()
def main(log_level: str = LOG_LEVEL_OPTION) -> None:
    """Configure logging for every command."""
    configure_logging(log_level)


def _open_store(config: LexicalConfig, cache_dir: Path, source: Path | None) -> LexicalStore:
    store = LexicalStore(config.store)
    result = store.initialize(cache_dir=cache_dir, source_path=source)
    LOGGER.info("Store ready via %s with %d entries", result.method, result.total_entries)
    return store


@app.command("build-cache")
def build_cache(
    source: Path = SOURCE_ARGUMENT,
    cache_dir: Path = CACHE_DIR_OPTION,
    config_path: Path | None = CONFIG_OPTION,
    memory_budget_mb: float | None = MEMORY_OPTION,
    max_entries: int | None = MAX_ENTRIES_OPTION,
    strengthen: bool = STRENGTHEN_OPTION,
) -> None:
    """Ingest a dictionary source and write the sharded cache."""

    config = load_config(config_path)
    store = LexicalStore(config.store)
    result = store.load_from_source(source, memory_budget_mb=memory_budget_mb, max_entries=max_entries)
    if not result.success:
        typer.echo(json.dumps(result.to_dict(), ensure_ascii=False))
        raise typer.Exit(code=1)
    summary = {"load": result.to_dict()}
    if strengthen:
        summary["strengthening"] = store.build_enhanced_synonym_map().to_dict()
    metadata = store.save_cache(cache_dir, [source])
    summary["cache"] = metadata["stats"]
    typer.echo(json.dumps(summary, ensure_ascii=False, indent=2))


@app.command("clear-cache")
def clear_cache(cache_dir: Path = CACHE_DIR_OPTION) -> None:
    """Delete every file of a dictionary cache."""

    removed = DictionaryCache(cache_dir).clear()
    typer.echo(json.dumps({"removed": removed}))


@app.command()
def synonyms(
    word: str = typer.Argument(..., help="Headword to look up."),
    cache_dir: Path = CACHE_DIR_OPTION,
    source: Path | None = SOURCE_OPTION,
    config_path: Path | None = CONFIG_OPTION,
    limit: int = LIMIT_OPTION,
) -> None:
    """Print ranked synonyms for WORD."""

    store = _open_store(load_config(config_path), cache_dir, source)
    entry = store.get_entry(word)
    payload = {
        "word": word,
        "known": entry is not None,
        "synonyms": store.get_synonyms(word, limit),
        "quality": store.quality_of(word),
    }
    typer.echo(json.dumps(payload, ensure_ascii=False))


@app.command()
def diversify(
    text: str = typer.Argument(..., help="Japanese text to diversify."),
    cache_dir: Path = CACHE_DIR_OPTION,
    source: Path | None = SOURCE_OPTION,
    config_path: Path | None = CONFIG_OPTION,
    politeness: str = POLITENESS_OPTION,
    seed: int | None = SEED_OPTION,
    strengthen: bool = STRENGTHEN_OPTION,
) -> None:
    """Substitute compatible synonyms in TEXT and print the result."""

    config = load_config(config_path)
    if seed is not None:
        seed_everything(seed)
        config.diversifier.seed = seed
    store = _open_store(config, cache_dir, source)
    if strengthen and not store.strengthened:
        store.build_enhanced_synonym_map()
    diversifier = LexicalDiversifier(
        store,
        JanomeTokenizer(),
        config=dataclasses.replace(config.diversifier, strengthen_on_first_use=False),
    )

    async def _run() -> str:
        try:
            return await diversifier.diversify_response(text, DiversificationContext(politeness=politeness))
        finally:
            await diversifier.aclose()

    typer.echo(asyncio.run(_run()))


@app.command()
def stats(
    cache_dir: Path = CACHE_DIR_OPTION,
    source: Path | None = SOURCE_OPTION,
    config_path: Path | None = CONFIG_OPTION,
    output: Path | None = OUTPUT_OPTION,
    table: bool = TABLE_OPTION,
) -> None:
    """Report store statistics, health and synonym probes."""

    store = _open_store(load_config(config_path), cache_dir, source)
    result = DiagnosticsSuite(store).run()
    report = {**result.to_dict(), "cache": DictionaryCache(cache_dir).stats()}
    if table:
        render_diagnostics(result)
    else:
        typer.echo(json.dumps(report, ensure_ascii=False, indent=2))
    if output is not None:
        save_json(output, report)
        LOGGER.info("Wrote diagnostics to %s", output)


if __name__ == "__main__":
    app()
