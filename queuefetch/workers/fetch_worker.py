#!/usr/bin/env python3
"""
Command-line worker that drains a list of fetch tasks.

Tasks come from positional arguments and/or an input file with one task per
line: either a bare URL or a JSON object {"url", "method", "params"}.
Every delivered result is printed to stdout as one JSON line.

Usage:
    queuefetch https://example.com/a https://example.com/b
    queuefetch --input tasks.jsonl --max-workers 5 --no-check-result
    cat urls.txt | queuefetch --input -
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, NoReturn, TextIO

from queuefetch.core.config.loader import (
    get_log_level,
    load_dispatcher_config,
    load_fetcher_config,
)
from queuefetch.core.exceptions import ConfigurationError, QueueFetchError
from queuefetch.core.primitives.dispatcher import Dispatcher, DispatchStats
from queuefetch.core.primitives.fetcher import Fetcher, Task

logger = logging.getLogger(__name__)


def setup_logging(log_level: str) -> None:
    """
    Configure logging for the worker.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Raises:
        ConfigurationError: If log_level is not a known level name.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level: {log_level!r}")

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def parse_task(line: str) -> Task | None:
    """Parse one input line into a task, skipping blanks and comments."""
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("{"):
        try:
            return json.loads(line)
        except json.JSONDecodeError as e:
            raise QueueFetchError(f"Invalid JSON task: {line}") from e
    return line


def read_tasks(stream: TextIO) -> list[Task]:
    """Read tasks from a text stream."""
    tasks = []
    for line in stream:
        task = parse_task(line)
        if task is not None:
            tasks.append(task)
    return tasks


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="queuefetch",
        description="Fetch a queue of URLs with a pool of concurrent workers.",
    )
    parser.add_argument("urls", nargs="*", help="URLs to fetch")
    parser.add_argument(
        "-i", "--input",
        help="File with one URL or JSON task per line ('-' for stdin)",
    )
    parser.add_argument("-w", "--max-workers", type=int, help="Maximum concurrent workers")
    parser.add_argument(
        "--no-check-result",
        action="store_true",
        help="Deliver failed and empty results too",
    )
    parser.add_argument("--debug", action="store_true", help="Log every request before it is sent")
    parser.add_argument("--log-level", help="Logging level (default from config)")
    parser.add_argument("--config-dir", help="Directory holding dispatcher.yaml")
    return parser


def _headers_to_dict(headers: Any) -> dict[str, str] | None:
    if headers is None:
        return None
    return dict(headers.items())


def make_printer(out: TextIO):
    """Create a completion callback that writes JSON lines to out."""

    def on_complete(task: Task, result: Any, headers: Any) -> None:
        record = {
            "task": task,
            "result": result,
            "headers": _headers_to_dict(headers),
        }
        out.write(json.dumps(record, default=str) + "\n")
        out.flush()

    return on_complete


async def run_worker(args: argparse.Namespace, out: TextIO = sys.stdout) -> DispatchStats:
    """
    Build the dispatcher from config and arguments, then drain the tasks.

    Args:
        args: Parsed command-line arguments.
        out: Stream receiving delivered results.

    Returns:
        Statistics of the run.
    """
    tasks: list[Task] = list(args.urls)
    if args.input == "-":
        tasks.extend(read_tasks(sys.stdin))
    elif args.input:
        with open(args.input) as f:
            tasks.extend(read_tasks(f))

    dispatcher = Dispatcher(
        config=load_dispatcher_config(args.config_dir),
        fetcher=Fetcher(load_fetcher_config(args.config_dir)),
    )
    if args.max_workers is not None:
        dispatcher.set_max_worker(args.max_workers)
    if args.no_check_result:
        dispatcher.set_check_result(False)
    if args.debug:
        dispatcher.set_debugger(lambda url, params: logger.info(f"fetch {url} with {params}"))

    logger.info(f"Configuration: {dispatcher.config}")

    return await dispatcher.run(tasks, make_printer(out))


def main(argv: list[str] | None = None) -> NoReturn:
    """
    Main entrypoint for the worker.

    This is the synchronous wrapper that starts the async event loop.
    """
    args = build_parser().parse_args(argv)

    try:
        setup_logging(args.log_level or get_log_level(args.config_dir))
        asyncio.run(run_worker(args))
    except (QueueFetchError, OSError) as e:
        logger.critical(f"Fatal error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)

    sys.exit(0)


if __name__ == "__main__":
    main()
