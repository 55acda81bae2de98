"""Command line interface for semmark."""

from __future__ import annotations

import logging
import sys
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .bookmarks import count_bookmarks, iter_folders
from .config import load_config, resolve_default_model
from .engine import Engine
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .services.config_service import apply_config_updates, get_config_snapshot
from .services.search_service import SearchPage
from .store import ensure_data_dir
from .text import Messages, Styles
from .utils import plural

console = Console()

app = typer.Typer(
    help=Messages.APP_HELP,
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


class SearchOutputFormat(str, Enum):
    rich = "rich"
    porcelain = "porcelain"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"semmark v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help=Messages.HELP_VERBOSE,
    ),
) -> None:
    """Global Typer callback for shared options."""
    configure_quiet_mode(not verbose)
    if verbose:
        enable_debug_mode()


def _build_engine(bookmarks: Path | None = None, *, stream_status: bool = False) -> Engine:
    config = load_config()
    if bookmarks is not None:
        config.bookmarks_path = str(bookmarks)
    on_status = None
    if stream_status:
        on_status = lambda text: console.print(_styled(escape(text), Styles.INFO))  # noqa: E731
    return Engine(config, on_status=on_status)


@app.command()
def folders(
    bookmarks: Path | None = typer.Option(
        None,
        "--bookmarks",
        "-b",
        help=Messages.HELP_BOOKMARKS_PATH,
    ),
) -> None:
    """List bookmark folders and their ids."""
    engine = _build_engine(bookmarks)
    try:
        tree = engine.source.get_tree()
        indexed = set(engine.indexed_folders())
    except RuntimeError as exc:
        console.print(_styled(str(exc), Styles.ERROR))
        raise typer.Exit(code=1)
    finally:
        engine.close()
    rows = list(iter_folders(tree))
    if not rows:
        console.print(_styled(Messages.INFO_NO_FOLDERS, Styles.WARNING))
        raise typer.Exit(code=0)
    console.print(_styled(Messages.TABLE_FOLDERS_TITLE, Styles.TITLE))
    table = Table(show_header=True, header_style=Styles.TABLE_HEADER)
    table.add_column(Messages.TABLE_HEADER_FOLDER_ID, justify="right")
    table.add_column(Messages.TABLE_HEADER_FOLDER, overflow="fold")
    table.add_column(Messages.TABLE_HEADER_BOOKMARKS, justify="right")
    for node, depth in rows:
        label = f"{'  ' * depth}{node.title or '-'}"
        if node.id in indexed:
            label = f"{label} *"
        table.add_row(escape(node.id), escape(label), str(count_bookmarks(node)))
    console.print(table)


@app.command()
def sync(
    folder_ids: list[str] | None = typer.Argument(None, help=Messages.HELP_FOLDER_IDS),
    bookmarks: Path | None = typer.Option(
        None,
        "--bookmarks",
        "-b",
        help=Messages.HELP_BOOKMARKS_PATH,
    ),
) -> None:
    """Index the selected folders and drop bookmarks outside them."""
    handler = configure_ops_log(ensure_data_dir())
    engine = _build_engine(bookmarks, stream_status=True)
    try:
        report = engine.sync(folder_ids or [])
    except RuntimeError as exc:
        console.print(_styled(str(exc), Styles.ERROR))
        raise typer.Exit(code=1)
    finally:
        engine.close()
        logging.getLogger("semmark").removeHandler(handler)
        handler.close()
    console.print(
        _styled(
            Messages.INFO_SYNC_SUMMARY.format(
                added=report.added,
                removed=report.removed,
                dead=report.dead_links,
                soft=report.soft_failures,
                chunks=report.chunks_indexed,
            ),
            Styles.SUCCESS,
        )
    )


@app.command()
def search(
    query: str = typer.Argument(..., help=Messages.HELP_QUERY),
    page: int = typer.Option(1, "--page", "-p", help=Messages.HELP_PAGE),
    output_format: SearchOutputFormat = typer.Option(
        SearchOutputFormat.rich,
        "--format",
        help=Messages.HELP_FORMAT,
    ),
) -> None:
    """Run a semantic search over indexed bookmarks."""
    clean_query = query.strip()
    if not clean_query:
        console.print(_styled(Messages.ERROR_EMPTY_QUERY, Styles.ERROR))
        raise typer.Exit(code=1)
    if page < 1:
        console.print(_styled(Messages.ERROR_PAGE_INVALID, Styles.ERROR))
        raise typer.Exit(code=1)
    engine = _build_engine()
    try:
        result_page = engine.search(clean_query)
        if page != 1:
            result_page = engine.get_more_results(page)
    except RuntimeError as exc:
        console.print(_styled(str(exc), Styles.ERROR))
        raise typer.Exit(code=1)
    finally:
        engine.close()
    if not result_page.results:
        if output_format == SearchOutputFormat.rich:
            console.print(_styled(Messages.INFO_NO_RESULTS, Styles.WARNING))
        raise typer.Exit(code=0)
    if output_format == SearchOutputFormat.porcelain:
        _render_results_porcelain(result_page)
        return
    _render_results(result_page)


@app.command()
def stats() -> None:
    """Show how many bookmarks and chunks are indexed."""
    engine = _build_engine()
    try:
        result = engine.get_stats()
    except RuntimeError as exc:
        console.print(_styled(str(exc), Styles.ERROR))
        raise typer.Exit(code=1)
    finally:
        engine.close()
    console.print(
        _styled(
            Messages.INFO_STATS.format(
                bookmarks=result.bookmark_count,
                chunks=result.chunk_count,
            ),
            Styles.INFO,
        )
    )


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help=Messages.HELP_CLEAR_YES),
) -> None:
    """Delete all indexed bookmarks, chunks, dead links and folder selections."""
    if not yes and not typer.confirm(Messages.INFO_CLEAR_CONFIRM, default=False):
        console.print(_styled(Messages.INFO_CLEAR_ABORTED, Styles.INFO))
        raise typer.Exit(code=0)
    engine = _build_engine()
    try:
        engine.clear_all_data()
    except RuntimeError as exc:
        console.print(_styled(str(exc), Styles.ERROR))
        raise typer.Exit(code=1)
    finally:
        engine.close()
    console.print(_styled(Messages.STATUS_CLEARED, Styles.SUCCESS))


@app.command()
def config(
    set_api_key_option: str | None = typer.Option(
        None,
        "--set-api-key",
        help=Messages.HELP_SET_API_KEY,
    ),
    clear_api_key: bool = typer.Option(
        False,
        "--clear-api-key",
        help=Messages.HELP_CLEAR_API_KEY,
    ),
    set_model_option: str | None = typer.Option(
        None,
        "--set-model",
        help=Messages.HELP_SET_MODEL,
    ),
    set_provider_option: str | None = typer.Option(
        None,
        "--set-provider",
        help=Messages.HELP_SET_PROVIDER,
    ),
    set_base_url_option: str | None = typer.Option(
        None,
        "--set-base-url",
        help=Messages.HELP_SET_BASE_URL,
    ),
    clear_base_url: bool = typer.Option(
        False,
        "--clear-base-url",
        help=Messages.HELP_CLEAR_BASE_URL,
    ),
    set_backend_option: str | None = typer.Option(
        None,
        "--set-backend",
        help=Messages.HELP_SET_BACKEND,
    ),
    set_bookmarks_option: str | None = typer.Option(
        None,
        "--set-bookmarks",
        help=Messages.HELP_SET_BOOKMARKS,
    ),
    set_anti_patterns_option: str | None = typer.Option(
        None,
        "--set-anti-patterns",
        help=Messages.HELP_SET_ANTI_PATTERNS,
    ),
    show: bool = typer.Option(
        False,
        "--show",
        help=Messages.HELP_SHOW_CONFIG,
    ),
) -> None:
    """Manage semmark configuration."""
    if set_api_key_option is not None and clear_api_key:
        raise typer.BadParameter("--set-api-key and --clear-api-key cannot be used together.")
    if set_base_url_option is not None and clear_base_url:
        raise typer.BadParameter("--set-base-url and --clear-base-url cannot be used together.")

    try:
        updates = apply_config_updates(
            api_key=set_api_key_option,
            clear_api_key=clear_api_key,
            model=set_model_option,
            provider=set_provider_option,
            base_url=set_base_url_option,
            clear_base_url=clear_base_url,
            index_backend=set_backend_option,
            bookmarks_path=set_bookmarks_option,
            anti_patterns_path=set_anti_patterns_option,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    if updates.api_key_set:
        console.print(_styled(Messages.INFO_API_SAVED, Styles.SUCCESS))
    if updates.api_key_cleared:
        console.print(_styled(Messages.INFO_API_CLEARED, Styles.SUCCESS))
    if updates.model_set:
        console.print(
            _styled(Messages.INFO_MODEL_SET.format(value=set_model_option), Styles.SUCCESS)
        )
    if updates.provider_set:
        console.print(
            _styled(Messages.INFO_PROVIDER_SET.format(value=set_provider_option), Styles.SUCCESS)
        )
    if updates.base_url_set:
        console.print(
            _styled(Messages.INFO_BASE_URL_SET.format(value=set_base_url_option), Styles.SUCCESS)
        )
    if updates.base_url_cleared:
        console.print(_styled(Messages.INFO_BASE_URL_CLEARED, Styles.SUCCESS))
    if updates.backend_set:
        console.print(
            _styled(Messages.INFO_BACKEND_SET.format(value=set_backend_option), Styles.SUCCESS)
        )
    if updates.bookmarks_set:
        console.print(
            _styled(Messages.INFO_BOOKMARKS_SET.format(value=set_bookmarks_option), Styles.SUCCESS)
        )
    if updates.anti_patterns_set:
        console.print(
            _styled(
                Messages.INFO_ANTI_PATTERNS_SET.format(value=set_anti_patterns_option),
                Styles.SUCCESS,
            )
        )

    if show or not updates.changed:
        cfg = get_config_snapshot()
        console.print(
            _styled(
                Messages.INFO_CONFIG_SUMMARY.format(
                    api="yes" if cfg.api_key else "no",
                    provider=cfg.provider,
                    model=resolve_default_model(cfg.provider, cfg.model),
                    base_url=cfg.base_url or "default",
                    backend=cfg.index_backend,
                    bookmarks=cfg.bookmarks_path or "auto-detect",
                    anti_patterns=cfg.anti_patterns_path or "bundled",
                ),
                Styles.INFO,
            )
        )


def _render_results(result_page: SearchPage) -> None:
    results = result_page.results
    console.print(_styled(Messages.TABLE_TITLE, Styles.TITLE))
    console.print(
        _styled(
            Messages.INFO_PAGE.format(
                page=result_page.page,
                count=result_page.total,
                plural=plural(result_page.total),
            ),
            Styles.INFO,
        )
    )
    metric = results[0].metric
    score_header = (
        Messages.TABLE_HEADER_DISTANCE if metric == "distance" else Messages.TABLE_HEADER_SIMILARITY
    )
    offset = (result_page.page - 1) * result_page.page_size
    table = Table(show_header=True, header_style=Styles.TABLE_HEADER)
    table.add_column(Messages.TABLE_HEADER_INDEX, justify="right")
    table.add_column(score_header, justify="right")
    table.add_column(Messages.TABLE_HEADER_TITLE, overflow="fold")
    table.add_column(Messages.TABLE_HEADER_URL, overflow="fold")
    table.add_column(Messages.TABLE_HEADER_PREVIEW, overflow="fold")
    for idx, result in enumerate(results, start=offset + 1):
        table.add_row(
            str(idx),
            f"{result.score:.3f}",
            escape(result.title or "-"),
            escape(result.url),
            escape(_format_preview(result.chunk)),
        )
    console.print(table)


def _escape_porcelain_field(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace("\t", "\\t")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def _render_results_porcelain(result_page: SearchPage) -> None:
    offset = (result_page.page - 1) * result_page.page_size
    for idx, result in enumerate(result_page.results, start=offset + 1):
        fields = (
            str(idx),
            result.metric,
            f"{result.score:.3f}",
            _escape_porcelain_field(result.title or "-"),
            _escape_porcelain_field(result.url),
            _escape_porcelain_field(result.chunk or "-"),
        )
        typer.echo("\t".join(fields))


def _styled(text: str, style: str) -> str:
    return f"[{style}]{text}[/{style}]"


def _format_preview(text: str | None, limit: int = 80) -> str:
    if not text:
        return "-"
    snippet = " ".join(text.split())
    if len(snippet) <= limit:
        return snippet
    return snippet[: limit - 1].rstrip() + "…"


def run(argv: list[str] | None = None) -> None:
    """Entry point wrapper allowing optional argument override."""
    args = list(argv) if argv is not None else sys.argv[1:]
    if argv is None:
        app()
    else:
        app(args=args)
