"""Tests for the command-line fetch worker."""

import io
import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from queuefetch.core.config.loader import get_config
from queuefetch.core.exceptions import QueueFetchError
from queuefetch.core.primitives.dispatcher import DispatchStats
from queuefetch.core.primitives.fetcher import Fetcher
from queuefetch.workers.fetch_worker import (
    build_parser,
    main,
    make_printer,
    parse_task,
    read_tasks,
    run_worker,
)


@pytest.fixture(autouse=True)
def _clear_config_cache() -> None:
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/empty":
        return httpx.Response(200, text="")
    return httpx.Response(200, text=request.url.path.lstrip("/"), headers={"X-Path": request.url.path})


@pytest.fixture
def mock_fetcher():
    """Patch the worker's Fetcher to use an in-memory transport."""
    with patch(
        "queuefetch.workers.fetch_worker.Fetcher",
        side_effect=lambda config: Fetcher(config, transport=httpx.MockTransport(_handler)),
    ) as mock:
        yield mock


class TestParseTask:
    """Tests for task line parsing."""

    def test_url(self):
        assert parse_task("  https://example.com/a \n") == "https://example.com/a"

    def test_json(self):
        task = parse_task('{"url": "https://example.com/post", "method": "post"}')

        assert task == {"url": "https://example.com/post", "method": "post"}

    @pytest.mark.parametrize("line", ["", "   \n", "# comment"])
    def test_skipped(self, line):
        assert parse_task(line) is None

    def test_invalid_json(self):
        with pytest.raises(QueueFetchError):
            parse_task("{not json")

    def test_read_tasks(self):
        stream = io.StringIO("https://example.com/a\n\n# skip\n{\"url\": \"https://example.com/b\"}\n")

        assert read_tasks(stream) == ["https://example.com/a", {"url": "https://example.com/b"}]


class TestMakePrinter:
    """Tests for the JSON line callback."""

    def test_writes_json_line(self):
        out = io.StringIO()
        printer = make_printer(out)

        printer("https://example.com/a", {"k": 1}, httpx.Headers({"X-A": "1"}))
        printer("https://example.com/b", None, None)

        lines = [json.loads(line) for line in out.getvalue().splitlines()]
        assert lines[0] == {"task": "https://example.com/a", "result": {"k": 1}, "headers": {"x-a": "1"}}
        assert lines[1] == {"task": "https://example.com/b", "result": None, "headers": None}


class TestRunWorker:
    """Tests for run_worker function."""

    @pytest.mark.asyncio
    async def test_fetches_arguments_and_input_file(self, tmp_path: Path, mock_fetcher):
        input_file = tmp_path / "tasks.txt"
        input_file.write_text("https://example.com/c\n{\"url\": \"https://example.com/d\"}\n")
        args = build_parser().parse_args(
            [
                "https://example.com/a",
                "https://example.com/empty",
                "--input", str(input_file),
                "--max-workers", "2",
                "--config-dir", str(tmp_path),
            ]
        )
        out = io.StringIO()

        stats = await run_worker(args, out=out)

        results = sorted(json.loads(line)["result"] for line in out.getvalue().splitlines())
        assert results == ["a", "c", "d"]
        assert stats.tasks_fetched == 4
        assert stats.tasks_filtered == 1
        assert stats.peak_workers == 2

    @pytest.mark.asyncio
    async def test_no_check_result(self, tmp_path: Path, mock_fetcher):
        args = build_parser().parse_args(
            ["https://example.com/empty", "--no-check-result", "--config-dir", str(tmp_path)]
        )
        out = io.StringIO()

        await run_worker(args, out=out)

        assert json.loads(out.getvalue())["result"] == ""

    @pytest.mark.asyncio
    async def test_debug_logs_requests(self, tmp_path: Path, mock_fetcher, caplog):
        args = build_parser().parse_args(
            ["https://example.com/a", "--debug", "--config-dir", str(tmp_path)]
        )

        with caplog.at_level("INFO"):
            await run_worker(args, out=io.StringIO())

        assert "fetch https://example.com/a with {}" in caplog.text


class TestMain:
    """Tests for main entrypoint."""

    def test_exit_zero_on_success(self):
        with patch(
            "queuefetch.workers.fetch_worker.run_worker",
            new=AsyncMock(return_value=DispatchStats()),
        ) as mock_run, patch("queuefetch.workers.fetch_worker.setup_logging"):
            with pytest.raises(SystemExit) as exc_info:
                main(["https://example.com/a", "--log-level", "INFO"])

        assert exc_info.value.code == 0
        mock_run.assert_awaited_once()

    def test_exit_one_on_unknown_log_level(self):
        with patch(
            "queuefetch.workers.fetch_worker.run_worker",
            new=AsyncMock(return_value=DispatchStats()),
        ) as mock_run:
            with pytest.raises(SystemExit) as exc_info:
                main(["https://example.com/a", "--log-level", "LOUD"])

        assert exc_info.value.code == 1
        mock_run.assert_not_called()

    def test_exit_one_on_error(self):
        with patch(
            "queuefetch.workers.fetch_worker.run_worker",
            new=AsyncMock(side_effect=QueueFetchError("bad task")),
        ), patch("queuefetch.workers.fetch_worker.setup_logging"):
            with pytest.raises(SystemExit) as exc_info:
                main(["--log-level", "INFO"])

        assert exc_info.value.code == 1
