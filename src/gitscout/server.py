"""
gitscout - documentation and code search for local git repositories.

An MCP server that fetches repository documentation, fuzzy-searches
documentation and source files through an in-memory index, and greps code
with regular expressions.
"""

import argparse
import asyncio
import io
import json
import logging
import os
import sys
import tomllib
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError

# OpenTelemetry imports
from opentelemetry import trace, propagate
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from gitscout.errors import FileReadError, GitScoutError
from gitscout.files import (
    find_code_files,
    find_documentation_files,
    read_documentation_file,
    read_file_content,
)
from gitscout.git_tools import get_file_history, get_repository_info, require_repository
from gitscout.grep import MAX_GREP_FILES, MAX_GREP_MATCHES, compile_query, grep_files
from gitscout.index import (
    DEFAULT_SEARCH_LIMIT,
    Category,
    IndexCache,
    IndexRecord,
    expand_query,
    search_index,
)
from gitscout.snippets import DEFAULT_SNIPPET_LENGTH, extract_snippet

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger("gitscout")

# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB - larger files are not indexed

DEFAULT_SETTINGS: dict[str, Any] = {
    "max_documentation_files": 5,
    "search_limit": DEFAULT_SEARCH_LIMIT,
    "snippet_length": DEFAULT_SNIPPET_LENGTH,
    "grep_max_files": MAX_GREP_FILES,
    "grep_max_matches": MAX_GREP_MATCHES,
    "respect_gitignore": True,
}

# Effective settings: defaults overlaid by config.toml in main()
_settings: dict[str, Any] = dict(DEFAULT_SETTINGS)

CATEGORY_ICONS = {
    Category.DOCUMENTATION: "📄",
    Category.CODE: "💻",
}


def _default_config_path() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(config_home) / "gitscout" / "config.toml"


def _load_config(config_path: Path | None = None) -> dict:
    """Load config from $XDG_CONFIG_HOME/gitscout/config.toml (or ~/.config/gitscout/config.toml).

    Returns parsed dict, or empty dict if file doesn't exist.
    Logs a warning on parse errors (non-fatal).
    """
    config_path = config_path or _default_config_path()

    if not config_path.is_file():
        logger.debug("No config file at %s", config_path)
        return {}

    try:
        with open(config_path, "rb") as f:
            config = tomllib.load(f)
        logger.info("Loaded config from %s", config_path)
        return config
    except tomllib.TOMLDecodeError as e:
        logger.warning("Invalid TOML in %s: %s", config_path, e)
        return {}


def _resolve_settings(config: dict) -> dict[str, Any]:
    """Overlay valid config values on DEFAULT_SETTINGS, warning about the rest."""
    settings = dict(DEFAULT_SETTINGS)

    for key, value in config.items():
        if key not in DEFAULT_SETTINGS:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        default = DEFAULT_SETTINGS[key]
        # bool is an int subclass, so compare exact types
        if type(value) is not type(default):
            logger.warning(
                "Config %r must be %s, got %s", key, type(default).__name__, type(value).__name__
            )
            continue
        if isinstance(value, int) and not isinstance(value, bool) and value < 1:
            logger.warning("Config %r must be positive, got %d", key, value)
            continue
        settings[key] = value

    return settings


# ─────────────────────────────────────────────────────────────────────────────
# Server & State
# ─────────────────────────────────────────────────────────────────────────────

async def _stdin_watchdog() -> None:
    """Exit if the MCP client disconnects (stdin fd closed).

    Polls every 5s using os.fstat(). If the fd becomes invalid (client
    crashed, pipe broken), the server exits cleanly instead of lingering.
    """
    try:
        fd = sys.stdin.fileno()
    except (ValueError, io.UnsupportedOperation):
        logger.warning("stdin has no fileno, watchdog disabled")
        return

    while True:
        await asyncio.sleep(5)
        try:
            os.fstat(fd)
        except OSError:
            logger.info("stdin fd invalid, client disconnected, exiting")
            os._exit(0)


@asynccontextmanager
async def _gitscout_lifespan(app):
    """FastMCP lifespan: start/cancel the stdin watchdog."""
    task = asyncio.create_task(_stdin_watchdog())
    logger.info("stdin watchdog started")
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("stdin watchdog stopped")


mcp = FastMCP("gitscout", lifespan=_gitscout_lifespan)

# Search indexes, one per repository path, built lazily on first search
_index_cache = IndexCache()

# Dedicated thread pool for filesystem and git work (keeps the event loop free)
_EXECUTOR = ThreadPoolExecutor(max_workers=8, thread_name_prefix="gitscout")


# ─────────────────────────────────────────────────────────────────────────────
# MCP Resources
# ─────────────────────────────────────────────────────────────────────────────


@mcp.resource("gitscout://info")
def get_server_info() -> str:
    """Server version and effective limits."""
    from gitscout import __version__

    info = {
        "version": __version__,
        "settings": _settings,
        "limits": {
            "max_file_size_mb": MAX_FILE_SIZE // (1024 * 1024),
        },
    }
    return json.dumps(info, indent=2)


@mcp.resource("gitscout://index/stats")
def get_index_stats() -> str:
    """Search index statistics (records per indexed repository path)."""
    stats = _index_cache.stats()
    if not stats:
        return json.dumps({"message": "No indexes loaded. Use search_documentation first."})
    return json.dumps({path: {"records": count} for path, count in stats.items()}, indent=2)


# ─────────────────────────────────────────────────────────────────────────────
# Index building
# ─────────────────────────────────────────────────────────────────────────────


def build_search_records(repository_path: str, respect_gitignore: bool = True) -> list[IndexRecord]:
    """Read documentation and code files into index records.

    Files that cannot be read, or exceed MAX_FILE_SIZE, are logged and skipped.
    """
    records: list[IndexRecord] = []

    for info in find_documentation_files(repository_path, respect_gitignore):
        if info.size > MAX_FILE_SIZE:
            logger.warning("Skipping %s: exceeds %d bytes", info.relative_path, MAX_FILE_SIZE)
            continue
        try:
            doc = read_documentation_file(info.path, info.relative_path)
        except FileReadError as e:
            logger.warning("Error indexing %s: %s", info.relative_path, e)
            continue
        title = (doc.front_matter or {}).get("title") or info.relative_path
        records.append(
            IndexRecord(
                content=doc.content,
                file_path=info.relative_path,
                title=str(title),
                category=Category.DOCUMENTATION,
            )
        )

    for info in find_code_files(repository_path, respect_gitignore=respect_gitignore):
        if info.size > MAX_FILE_SIZE:
            logger.warning("Skipping %s: exceeds %d bytes", info.relative_path, MAX_FILE_SIZE)
            continue
        try:
            content = read_file_content(info.path)
        except FileReadError as e:
            logger.warning("Error indexing %s: %s", info.relative_path, e)
            continue
        records.append(
            IndexRecord(
                content=content,
                file_path=info.relative_path,
                title=info.relative_path,
                category=Category.CODE,
            )
        )

    return records


# ─────────────────────────────────────────────────────────────────────────────
# Reports
# ─────────────────────────────────────────────────────────────────────────────


def fetch_documentation(repository_path: str) -> str:
    """Render the repository header and its most important documentation files."""
    require_repository(repository_path)
    repo = get_repository_info(repository_path)

    doc_files = find_documentation_files(repository_path, _settings["respect_gitignore"])
    if not doc_files:
        return f"No documentation files found in {repository_path}"

    output = [f"# Documentation for {repository_path}\n"]
    output.append(f"**Repository Branch:** {repo.current_branch}")
    if repo.remote_url:
        output.append(f"**Remote URL:** {repo.remote_url}")
    output.append(f"**Status:** {'Clean' if repo.is_clean else 'Modified'}\n")

    max_files = _settings["max_documentation_files"]
    for info in doc_files[:max_files]:
        try:
            doc = read_documentation_file(info.path, info.relative_path)
        except FileReadError as e:
            logger.warning("Error reading %s: %s", info.relative_path, e)
            output.append(f"Error reading {info.relative_path}: {e}\n")
            continue

        output.append(f"## {info.relative_path}\n")
        if doc.front_matter:
            output.append("**Metadata:**")
            output.append(json.dumps(doc.front_matter, indent=2, default=str))
            output.append("")
        output.append(doc.content)
        output.append("\n---\n")

    remaining = len(doc_files) - max_files
    if remaining > 0:
        output.append(f"\n*Note: {remaining} additional documentation files available.*")

    return "\n".join(output)


def search_documentation(repository_path: str, query: str, cache: IndexCache | None = None) -> str:
    """Fuzzy-search documentation and code, building the index on first use."""
    if cache is None:
        cache = _index_cache
    require_repository(repository_path)

    loader = partial(build_search_records, repository_path, _settings["respect_gitignore"])
    index = cache.get_or_build(repository_path, loader)
    results = search_index(index, query, _settings["search_limit"])

    if not results:
        return f'No results found for query: "{query}" in {repository_path}'

    # Snippets look for the words of the dequoted phrase
    snippet_query = expand_query(query)[0]

    output = [f'# Search Results for: "{query}"\n']
    output.append(f"Found {len(results)} matches in {repository_path}\n")

    for i, hit in enumerate(results, 1):
        icon = CATEGORY_ICONS[hit.category]
        output.append(f"## {icon} Result {i} (Score: {1 - hit.score:.2f}) [{hit.category.value}]")
        output.append(f"**File:** {hit.file_path}\n")
        output.append(
            extract_snippet(hit.content, snippet_query, hit.category, _settings["snippet_length"])
        )
        output.append("\n---\n")

    return "\n".join(output)


def search_code(repository_path: str, query: str, file_pattern: str | None = None) -> str:
    """Grep code files with a case-insensitive regex and render numbered context."""
    require_repository(repository_path)
    pattern = compile_query(query)

    code_files = find_code_files(repository_path, file_pattern, _settings["respect_gitignore"])
    if not code_files:
        suffix = f" matching pattern: {file_pattern}" if file_pattern else ""
        return f"No code files found in {repository_path}{suffix}"

    max_files = _settings["grep_max_files"]
    results = grep_files(code_files, pattern, max_files, _settings["grep_max_matches"])
    if not results:
        return f'No matches found for "{query}" in code files'

    output = [f'# Code Search Results for: "{query}"\n']
    output.append(f"Found matches in {len(results)} files\n")
    if len(code_files) > max_files:
        output.append(f"*Note: searched the first {max_files} of {len(code_files)} code files.*\n")

    for result in results:
        output.append(f"## {result.file_path}\n")
        for match in result.matches:
            output.append(f"**Line {match.line}:**")
            output.append("```")
            for offset, line in enumerate(match.context):
                number = match.context_start + offset
                marker = ">" if number == match.line else " "
                output.append(f"{marker} {number}: {line}")
            output.append("```\n")
        output.append("---\n")

    return "\n".join(output)


def file_history(repository_path: str, file_path: str, limit: int = 10) -> str:
    """Render the commits that touched a file, newest first."""
    commits = get_file_history(repository_path, file_path, limit)
    if not commits:
        return f"No history found for {file_path} in {repository_path}"

    output = [f"# History for {file_path}\n"]
    for commit in commits:
        output.append(f"- `{commit.hash[:12]}` {commit.date} **{commit.author}**: {commit.message}")
    return "\n".join(output)


def clear_search_index(repository_path: str, cache: IndexCache | None = None) -> str:
    """Drop the cached search index for a repository."""
    if cache is None:
        cache = _index_cache
    require_repository(repository_path)
    if cache.clear(repository_path):
        return f"Search index cleared for {repository_path}. It will be rebuilt on the next search."
    return f"No search index loaded for {repository_path}."


# ─────────────────────────────────────────────────────────────────────────────
# MCP Tools
# ─────────────────────────────────────────────────────────────────────────────


async def _run_tool(
    operation: str,
    func: Callable[[], str],
    attributes: dict[str, Any],
    ctx: Context | None = None,
) -> str:
    """Run a blocking report builder on the executor inside a trace span.

    GitScoutError messages surface verbatim as tool errors; anything else is
    reported as a failure of the operation.
    """
    tracer = trace.get_tracer("gitscout")

    with tracer.start_as_current_span(operation) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(f"gitscout.{key}", value)

        if ctx:
            await ctx.debug(f"{operation}: {attributes}")

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(_EXECUTOR, func)
        except GitScoutError as e:
            logger.warning("%s failed: %s", operation, e)
            if ctx:
                await ctx.error(str(e))
            raise ToolError(str(e)) from e
        except Exception as e:
            logger.exception("%s failed", operation)
            raise ToolError(f"{operation} failed: {e}") from e


@mcp.tool(name="fetch_documentation")
async def fetch_documentation_tool(repository_path: str, ctx: Context | None = None) -> str:
    """Fetch documentation from a local git repository (README, docs/, etc.).

    Args:
        repository_path: Path to the local git repository.
    """
    return await _run_tool(
        "fetch_documentation",
        partial(fetch_documentation, repository_path),
        {"repository_path": repository_path},
        ctx,
    )


@mcp.tool(name="search_documentation")
async def search_documentation_tool(
    repository_path: str,
    query: str,
    ctx: Context | None = None,
) -> str:
    """Search through documentation and code in a local git repository.

    Fuzzy matching tolerates typos. Wrap the query in quotes to search for an
    exact phrase only.

    Args:
        repository_path: Path to the local git repository.
        query: Search query.
    """
    return await _run_tool(
        "search_documentation",
        partial(search_documentation, repository_path, query),
        {"repository_path": repository_path, "query": query},
        ctx,
    )


@mcp.tool(name="search_code")
async def search_code_tool(
    repository_path: str,
    query: str,
    file_pattern: str | None = None,
    ctx: Context | None = None,
) -> str:
    """Search through code files in a local git repository with a regular expression.

    Args:
        repository_path: Path to the local git repository.
        query: Case-insensitive regular expression.
        file_pattern: Optional file pattern (e.g., '*.ts', '*.py').
    """
    return await _run_tool(
        "search_code",
        partial(search_code, repository_path, query, file_pattern),
        {"repository_path": repository_path, "query": query, "file_pattern": file_pattern},
        ctx,
    )


@mcp.tool(name="file_history")
async def file_history_tool(
    repository_path: str,
    file_path: str,
    limit: int = 10,
    ctx: Context | None = None,
) -> str:
    """List recent commits that touched a file.

    Args:
        repository_path: Path to the local git repository.
        file_path: File path relative to the repository root.
        limit: Max commits (capped at 100). Default 10.
    """
    return await _run_tool(
        "file_history",
        partial(file_history, repository_path, file_path, limit),
        {"repository_path": repository_path, "file_path": file_path},
        ctx,
    )


@mcp.tool(name="clear_search_index")
async def clear_search_index_tool(repository_path: str, ctx: Context | None = None) -> str:
    """Drop the cached search index so the next search re-reads the repository.

    Args:
        repository_path: Path to the local git repository.
    """
    return await _run_tool(
        "clear_search_index",
        partial(clear_search_index, repository_path),
        {"repository_path": repository_path},
        ctx,
    )


def setup_otel(endpoint: str | None = None) -> None:
    """Configure OpenTelemetry for OTLP export using standard variables."""
    # Priority: 1. CLI Arg, 2. GITSCOUT specific ENV, 3. Standard OTel ENV
    if not endpoint:
        endpoint = os.getenv("GITSCOUT_OTEL_ENDPOINT") or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        return

    service_name = os.getenv("OTEL_SERVICE_NAME", "gitscout")

    logger.info("Configuring OpenTelemetry OTLP export for '%s' to %s", service_name, endpoint)
    resource = Resource(attributes={"service.name": service_name})
    provider = TracerProvider(resource=resource)

    processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)

    # Enable W3C Trace Context propagation
    propagate.set_global_textmap(TraceContextTextMapPropagator())


def main() -> None:
    parser = argparse.ArgumentParser(description="gitscout - search local git repositories")
    parser.add_argument("--otel-endpoint", help="OTLP gRPC endpoint (e.g., localhost:4317)")
    parser.add_argument(
        "--config",
        type=Path,
        metavar="FILE",
        help="Config file (default: $XDG_CONFIG_HOME/gitscout/config.toml)",
    )
    args, _ = parser.parse_known_args()

    _settings.update(_resolve_settings(_load_config(args.config)))
    logger.info("Settings: %s", _settings)

    setup_otel(args.otel_endpoint)
    mcp.run()


if __name__ == "__main__":
    main()
