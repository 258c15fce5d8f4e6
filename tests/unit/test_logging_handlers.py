"""Tests for logging formatters and handlers."""

import io
import json
import os
import tempfile

import pytest

from paychannels.logging import (
    ConsoleHandler,
    FileHandler,
    JSONFormatter,
    LogContext,
    LogEntry,
    LogLevel,
    MemoryHandler,
    TextFormatter,
)


def make_entry(level=LogLevel.INFO, message="Channel opened", extra=None, exception=None):
    return LogEntry(
        timestamp=1700000000.25,
        level=level,
        message=message,
        logger_name="paychannels.state_channels",
        context=LogContext(component="channels"),
        exception=exception,
        extra=extra or {},
    )


class TestJSONFormatter:
    """Test JSONFormatter functionality."""

    def test_basic_fields(self):
        """Test the default JSON layout."""
        data = json.loads(JSONFormatter().format(make_entry()))
        assert data["level"] == "info"
        assert data["logger"] == "paychannels.state_channels"
        assert data["message"] == "Channel opened"
        assert data["timestamp"].startswith("2023-11-14T22:13:20")
        assert "context" not in data

    def test_bytes_extra_rendered_as_hex(self):
        """Test ids and signatures in extra are rendered as 0x-hex."""
        entry = make_entry(extra={"channel_id": b"\x01\x02", "seq": 4})
        data = json.loads(JSONFormatter().format(entry))
        assert data["extra"] == {"channel_id": "0x0102", "seq": 4}

    def test_include_context(self):
        """Test context output when enabled."""
        data = json.loads(JSONFormatter(include_context=True).format(make_entry()))
        assert data["context"]["component"] == "channels"

    def test_exception_details(self):
        """Test exception type and message are included."""
        entry = make_entry(exception=ValueError("bad value"))
        data = json.loads(JSONFormatter().format(entry))
        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "bad value"

    def test_unix_timestamp(self):
        """Test the unix timestamp format."""
        data = json.loads(JSONFormatter(timestamp_format="unix").format(make_entry()))
        assert data["timestamp"] == "1700000000.25"


class TestTextFormatter:
    """Test TextFormatter functionality."""

    def test_default_format(self):
        """Test the default text layout."""
        text = TextFormatter().format(make_entry())
        assert text == "2023-11-14 22:13:20 [INFO] paychannels.state_channels: Channel opened"

    def test_extra_pairs_sorted(self):
        """Test extra values are appended as sorted key=value pairs."""
        text = TextFormatter().format(make_entry(extra={"seq": 2, "channel_id": b"\xff"}))
        assert text.endswith("channel_id=0xff seq=2")


class TestConsoleHandler:
    """Test ConsoleHandler functionality."""

    def test_writes_to_stream(self):
        """Test output goes to the given stream."""
        stream = io.StringIO()
        handler = ConsoleHandler(stream)
        handler.set_formatter(TextFormatter())
        handler.handle(make_entry())
        assert "Channel opened" in stream.getvalue()

    def test_writes_to_current_stdout(self, capsys):
        """Test the default stream is resolved at emit time."""
        handler = ConsoleHandler()
        handler.handle(make_entry(message="to stdout"))
        assert "to stdout" in capsys.readouterr().out

    def test_level_filtering(self):
        """Test entries below the handler level are dropped."""
        stream = io.StringIO()
        handler = ConsoleHandler(stream)
        handler.set_level(LogLevel.ERROR)
        handler.handle(make_entry(level=LogLevel.WARNING))
        assert stream.getvalue() == ""


class TestMemoryHandler:
    """Test MemoryHandler functionality."""

    def test_buffer_is_bounded(self):
        """Test the oldest entries are dropped past max_size."""
        handler = MemoryHandler(max_size=2)
        for i in range(3):
            handler.handle(make_entry(message=f"m{i}"))
        assert [log["message"] for log in handler.get_logs()] == ["m1", "m2"]

    def test_filter_by_level(self):
        """Test filtering buffered entries by level."""
        handler = MemoryHandler()
        handler.handle(make_entry(level=LogLevel.INFO))
        handler.handle(make_entry(level=LogLevel.WARNING, message="rejected"))
        warnings = handler.get_logs("warning")
        assert [log["message"] for log in warnings] == ["rejected"]

    def test_clear_logs(self):
        """Test clearing the buffer."""
        handler = MemoryHandler()
        handler.handle(make_entry())
        handler.clear_logs()
        assert handler.get_logs() == []


class TestFileHandler:
    """Test FileHandler functionality."""

    def test_writes_json_lines(self):
        """Test entries are appended one per line."""
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, "logs", "channels.log")
            handler = FileHandler(path)
            handler.set_formatter(JSONFormatter())
            handler.handle(make_entry(message="first"))
            handler.handle(make_entry(message="second"))
            handler.close()

            with open(path, encoding="utf-8") as f:
                lines = [json.loads(line) for line in f]
            assert [line["message"] for line in lines] == ["first", "second"]
