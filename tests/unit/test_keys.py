"""Unit tests for terminal key decoding."""

import os

import pytest

from kindplane.ui.keys import TerminalKeys, parse_keys


class TestParseKeys:
    """Tests for parse_keys."""

    def test_plain_and_control_keys(self):
        """Test printable characters and control bytes decode to key names."""
        assert parse_keys("qv\x03\x15\x04\r") == ["q", "v", "ctrl+c", "ctrl+u", "ctrl+d", "enter"]

    def test_escape_sequences(self):
        """Test arrow and paging sequences decode, and a lone escape stays esc."""
        assert parse_keys("\x1b[A\x1bOB\x1b[5~\x1b[6~\x1b") == ["up", "down", "pgup", "pgdown", "esc"]


@pytest.mark.skipif(os.name != "posix", reason="key reader needs POSIX file descriptors")
class TestTerminalKeys:
    """Tests for TerminalKeys outside a real terminal."""

    def test_start_without_tty(self):
        """Test start refuses a stream that is not a terminal."""

        class Pipe:
            def isatty(self):
                return False

        assert TerminalKeys(Pipe()).start(lambda key: None) is False

    @pytest.mark.asyncio
    async def test_delivers_keys(self):
        """Test readable input is decoded and delivered."""
        read_fd, write_fd = os.pipe()
        received = []
        keys = TerminalKeys()
        keys._fd = read_fd
        keys._on_key = received.append
        try:
            os.write(write_fd, b"v\x1b[A")
            keys._on_readable()
        finally:
            os.close(read_fd)
            os.close(write_fd)
        assert received == ["v", "up"]

    @pytest.mark.asyncio
    async def test_eof_stops_reader(self):
        """Test an empty read detaches the reader instead of firing again."""
        read_fd, write_fd = os.pipe()
        os.close(write_fd)
        received = []
        keys = TerminalKeys()
        keys._fd = read_fd
        keys._on_key = received.append
        try:
            keys._on_readable()
            assert keys._fd is None
            keys._on_readable()
        finally:
            os.close(read_fd)
        assert received == []
