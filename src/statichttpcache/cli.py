"""Console entry point: print a URL's body, going through the cache.

Responsibilities (and nothing more):
- Load settings and apply command-line overrides
- Configure structlog
- Fetch the URL through ``Cache`` and copy the body to stdout
"""

from __future__ import annotations

import logging
import shutil
import sys

import structlog
import typer
from pydantic import ValidationError

from statichttpcache import __version__
from statichttpcache.cache import Cache
from statichttpcache.config import Settings
from statichttpcache.errors import StaticHttpCacheError

log = structlog.get_logger()

EXIT_FAILURE = 1

app = typer.Typer(
    name="statichttpcache",
    help="Fetch a static HTTP resource through a local revalidating cache.",
    add_completion=False,
)


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Logs go to stderr; stdout carries the response body
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"statichttpcache {__version__}")
        raise typer.Exit()


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


@app.command()
def fetch(
    url: str = typer.Argument(..., help="URL of the resource to print."),
    cache_dir: str | None = typer.Option(
        None, "--cache-dir", "-d", help="Cache root directory (overrides configuration)."
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", "-l", help="DEBUG, INFO, WARNING or ERROR."
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Print the body of URL, revalidating any cached copy first."""
    overrides: dict[str, dict[str, str]] = {}
    if cache_dir is not None:
        overrides["cache"] = {"root": cache_dir}
    if log_level is not None:
        overrides["logging"] = {"level": log_level.upper()}
    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    _setup_logging(settings)

    try:
        with Cache.from_settings(settings) as cache, cache.get(url) as body:
            shutil.copyfileobj(body, sys.stdout.buffer)
            sys.stdout.buffer.flush()
    except StaticHttpCacheError as exc:
        log.debug("fetch_failed", **exc.to_dict()["error"])
        typer.echo(f"Could not download {url}: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc


def main() -> None:
    app()


if __name__ == "__main__":
    main()
