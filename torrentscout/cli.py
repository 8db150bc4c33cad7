"""Search every torrent site at once from the command line."""

import argparse
import io
import json
import logging
import sys
from typing import List, Optional, Sequence, TextIO

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .core.errors import AllSourcesFailedError, InvalidRequestError, UnknownSourceError
from .models.search_result import AggregateResult, NormalizedResult, SourceId
from .web.runtime import ScoutRuntime, build_runtime

EXIT_OK = 0
EXIT_NO_RESULT = 1
EXIT_ERROR = 2

MAX_NAME_WIDTH = 60
PIPE_WIDTH = 160


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.ERROR,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_parser() -> argparse.ArgumentParser:
    codes = ", ".join(f"{s.value} ({s.display_name})" for s in SourceId)
    parser = argparse.ArgumentParser(
        prog="torrentscout",
        description="Search several torrent websites concurrently and rank the results by seeders.",
    )
    parser.add_argument("query", nargs="+", help="Words to search for")
    parser.add_argument(
        "-s", "--sources", default="all",
        help=f"Comma separated websites to search, or 'all' (default). Known: {codes}",
    )
    parser.add_argument(
        "-t", "--timeout", type=float, default=None,
        help="Per-website timeout in seconds (default: from settings)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logs")
    parser.add_argument("--json", action="store_true", help="Output structured JSON")
    return parser


def _table_rows(results: Sequence[NormalizedResult]) -> List[List[str]]:
    # Site names often carry [tags]; escape them so rich prints them verbatim.
    return [
        [
            str(index),
            escape(r.name),
            escape(r.size),
            r.seeders_display,
            r.leechers_display,
            escape(r.upload_date),
            r.source_id.display_name,
        ]
        for index, r in enumerate(results, start=1)
    ]


def make_console(out: TextIO) -> Console:
    """Terminal width on a tty; a fixed wide layout when piped so rows stay on one line."""
    is_tty = getattr(out, "isatty", lambda: False)()
    return Console(file=out, width=None if is_tty else PIPE_WIDTH, emoji=False, highlight=False)


def build_table(results: Sequence[NormalizedResult]) -> Table:
    table = Table(header_style="bold")
    table.add_column("#", style="magenta", justify="right")
    table.add_column("Name", style="cyan", no_wrap=True, overflow="ellipsis", max_width=MAX_NAME_WIDTH)
    table.add_column("Size", style="yellow")
    table.add_column("Seeders", style="green", justify="right")
    table.add_column("Leechers", style="red", justify="right")
    table.add_column("Uploaded", style="blue")
    table.add_column("Source", style="dim")
    for row in _table_rows(results):
        table.add_row(*row)
    return table


def render_table(results: Sequence[NormalizedResult]) -> str:
    buffer = io.StringIO()
    make_console(buffer).print(build_table(results))
    return buffer.getvalue()


def _print_failures(result: AggregateResult, err: TextIO) -> None:
    for source_id in sorted(result.failed_sources, key=lambda s: s.value):
        print(f"An error occurred during search on {source_id.display_name}: {result.errors.get(source_id, '')}", file=err)


def run(args: argparse.Namespace, runtime: ScoutRuntime, out: TextIO = sys.stdout, err: TextIO = sys.stderr) -> int:
    manager = runtime.source_manager
    try:
        request = manager.build_request(" ".join(args.query), [args.sources], args.timeout)
    except (InvalidRequestError, UnknownSourceError) as e:
        print(str(e), file=err)
        return EXIT_ERROR

    try:
        result = manager.lookup(request)
    except AllSourcesFailedError as e:
        if args.json:
            print(json.dumps(e.result.to_dict(), indent=2), file=out)
        _print_failures(e.result, err)
        print(str(e), file=err)
        return EXIT_ERROR

    if args.json:
        print(json.dumps(result.to_dict(), indent=2), file=out)
        return EXIT_NO_RESULT if result.is_empty else EXIT_OK

    _print_failures(result, err)
    if result.is_empty:
        print("No result found", file=out)
        return EXIT_NO_RESULT
    make_console(out).print(build_table(result.merged))
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(args.verbose)
    runtime = build_runtime()
    try:
        return run(args, runtime)
    finally:
        runtime.source_manager.shutdown()
