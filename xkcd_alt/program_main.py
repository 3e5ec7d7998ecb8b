"""Main entry point for xkcd-alt."""

import sys
import textwrap
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from enum import IntEnum
from functools import partial
from typing import TextIO

from .config import Config
from .feed import FeedParseError, FeedProcessor
from .logging_config import create_execution_logger, setup_structured_logging
from .models import CliOptions, InfoRequest, RequestResult
from .program_options import (
    ArgumentError,
    parse_options,
    program_description,
    version_description,
)
from .rss import get_rss

RssFactory = Callable[[CliOptions], RequestResult]


class ExitCode(IntEnum):
    """Process exit statuses."""

    SUCCESS = 0
    ARGUMENT_ERROR = 1
    PARSE_ERROR = 2
    TRANSPORT_ERROR = 3
    SELECTION_ERROR = 4


def line_wrap(text: str, line_length: int = 80, hard_wrap: bool = False) -> str:
    """Wrap text at whitespace, keeping tabs and newlines already in it.

    Words longer than a line are only split across lines when ``hard_wrap``
    is set.
    """
    return textwrap.fill(
        text,
        width=line_length,
        expand_tabs=False,
        replace_whitespace=False,
        break_long_words=hard_wrap,
        break_on_hyphens=False,
    )


def program_main(
    argv: Sequence[str],
    rss_factory: RssFactory | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
    config: Config | None = None,
) -> ExitCode:
    """Run xkcd-alt and return its exit status.

    Args:
        argv: Command-line tokens, program name excluded
        rss_factory: Callable returning the RSS RequestResult for the parsed
            options; defaults to a real network request
        stdout: Stream for normal output, sys.stdout if None
        stderr: Stream for error messages, sys.stderr if None
        config: Configuration, read from the environment if None

    Returns:
        ExitCode for the process
    """
    out = stdout if stdout is not None else sys.stdout
    err = stderr if stderr is not None else sys.stderr
    config = config if config is not None else Config()

    execution_id = f"run_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"
    logger = create_execution_logger("main", execution_id)
    logger.log_execution_start(arg_count=len(argv))

    try:
        parsed = parse_options(argv)
    except ArgumentError as e:
        print(f"Error: {e}", file=err)
        logger.log_execution_end(success=False, failure="arguments")
        return ExitCode.ARGUMENT_ERROR

    if isinstance(parsed, InfoRequest):
        if parsed.kind == "help":
            print(program_description(), file=out)
        else:
            print(version_description(), file=out)
        out.flush()
        logger.log_execution_end(success=True, info=parsed.kind)
        return ExitCode.SUCCESS

    opts = parsed
    fetch = rss_factory or partial(
        get_rss, url=config.get_feed_config().url, execution_id=execution_id
    )
    result = fetch(opts)
    if not result.ok:
        print(f"Error: transport error {int(result.status)}: {result.reason}", file=err)
        logger.log_execution_end(success=False, failure="transport", code=int(result.status))
        return ExitCode.TRANSPORT_ERROR

    try:
        items = FeedProcessor(execution_id=execution_id).extract_items(result.payload)
    except FeedParseError as e:
        print(f"Error: {e}", file=err)
        logger.log_execution_end(success=False, failure="parse")
        return ExitCode.PARSE_ERROR

    n_items = len(items)
    if not n_items:
        print("Error: Couldn't find any one-liners in RSS feed!", file=err)
        logger.log_execution_end(success=False, failure="empty_feed")
        return ExitCode.SELECTION_ERROR

    if opts.previous >= n_items:
        print(
            f"Error: Can only go back at most {n_items - 1} strips, "
            f"not {opts.previous} strips",
            file=err,
        )
        logger.log_execution_end(success=False, failure="too_far_back")
        return ExitCode.SELECTION_ERROR

    item = items[opts.previous]
    logger.log_item_selection(item.guid, opts.previous, n_items)
    published = item.published
    if published is not None:
        logger.debug(f"Strip published {published.isoformat()}", item_guid=item.guid)

    if opts.one_line:
        print(f"{item.img_title} -- {item.guid}", file=out)
    else:
        wrapped = line_wrap(item.img_title, config.get_output_config().line_length)
        print(f"{wrapped}\n\t\t-- {item.guid}", file=out)
    out.flush()

    logger.log_metrics({"items_found": n_items, "previous": opts.previous})
    logger.log_execution_end(success=True)
    return ExitCode.SUCCESS


def main() -> None:
    """Console script entry point."""
    try:
        config = Config()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(ExitCode.ARGUMENT_ERROR)

    setup_structured_logging(config.log_level)
    sys.exit(program_main(sys.argv[1:], config=config))
