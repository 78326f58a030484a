"""Tests for the libtmux backend (tmux itself is mocked)."""

import asyncio
from unittest.mock import MagicMock

import pytest

from panewatch.core.backend import BackendError
from panewatch.tmux.backend import LibtmuxBackend, parse_pane_line


def tmux_result(stdout=None, stderr=None) -> MagicMock:
    result = MagicMock()
    result.stdout = stdout or []
    result.stderr = stderr or []
    return result


class TestParsePaneLine:
    def test_active_pane(self):
        pane = parse_pane_line("%0\t1\t1\t0\t1234\t0\tclaude\tmain")
        assert pane.id == "%0"
        assert pane.is_active
        assert pane.command == "claude"
        assert pane.title == "main"
        assert not pane.is_dead
        assert pane.index == 0

    def test_active_pane_in_background_window(self):
        pane = parse_pane_line("%4\t1\t0\t0\t99\t0\tzsh\tw")
        assert pane.is_active is False

    def test_dead_pane(self):
        assert parse_pane_line("%2\t0\t1\t1\t55\t2\tclaude\tx").is_dead
        assert parse_pane_line("%2\t0\t1\t0\t0\t2\tclaude\tx").is_dead

    def test_title_may_contain_tabs(self):
        assert parse_pane_line("%1\t0\t1\t0\t1\t1\tzsh\ta\tb").title == "a\tb"

    def test_garbage(self):
        assert parse_pane_line("") is None
        assert parse_pane_line("%1\t0") is None


class TestLibtmuxBackend:
    def test_list_panes_for_session(self):
        server = MagicMock()
        server.cmd.return_value = tmux_result(
            ["%0\t1\t1\t0\t10\t0\tclaude\tmain", "%1\t0\t1\t0\t11\t1\tzsh\tw1", "junk"]
        )
        panes = asyncio.run(LibtmuxBackend(server).list_panes("dev"))

        assert [pane.id for pane in panes] == ["%0", "%1"]
        args = server.cmd.call_args.args
        assert args[:4] == ("list-panes", "-s", "-t", "dev")

    def test_capture(self):
        server = MagicMock()
        server.cmd.return_value = tmux_result(["line 1", "line 2"])
        content = asyncio.run(LibtmuxBackend(server).get_content("%1", lines=20))

        assert content == "line 1\nline 2"
        assert server.cmd.call_args.args == ("capture-pane", "-p", "-t", "%1", "-S", "-20")

    def test_send_keys_with_enter(self):
        server = MagicMock()
        server.cmd.return_value = tmux_result()
        asyncio.run(LibtmuxBackend(server).send_keys("%1", "/clear", enter=True))

        calls = [c.args for c in server.cmd.call_args_list]
        assert calls == [("send-keys", "-t", "%1", "/clear"), ("send-keys", "-t", "%1", "Enter")]

    def test_stderr_raises_backend_error(self):
        server = MagicMock()
        server.cmd.return_value = tmux_result(stderr=["can't find pane: %9"])

        with pytest.raises(BackendError) as exc_info:
            asyncio.run(LibtmuxBackend(server).get_content("%9"))
        assert exc_info.value.pane_id == "%9"

    def test_exception_wrapped(self):
        server = MagicMock()
        server.cmd.side_effect = OSError("no server running")

        with pytest.raises(BackendError, match="no server running"):
            asyncio.run(LibtmuxBackend(server).list_panes(None))

    def test_titles(self):
        server = MagicMock()
        server.cmd.return_value = tmux_result(["[IDLE] w1"])
        backend = LibtmuxBackend(server)

        assert asyncio.run(backend.get_title("%1")) == "[IDLE] w1"
        asyncio.run(backend.set_title("%1", "[DONE] w1"))
        assert server.cmd.call_args.args == ("select-pane", "-t", "%1", "-T", "[DONE] w1")
