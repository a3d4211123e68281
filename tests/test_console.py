import io
import locale
import sys
from unittest import mock

from ylineworker.console import set_console_utf8


def _latin1_stream():
    return io.TextIOWrapper(io.BytesIO(), encoding="latin-1")


def _install_streams(monkeypatch):
    streams = {name: _latin1_stream() for name in ("stdin", "stdout", "stderr")}
    for name, stream in streams.items():
        monkeypatch.setattr(sys, name, stream)
    return streams


def test_streams_become_utf8(monkeypatch):
    monkeypatch.setattr(sys, "platform", "win32")
    streams = _install_streams(monkeypatch)
    result = set_console_utf8()
    assert result is None
    assert [s.encoding for s in streams.values()] == ["utf-8", "utf-8", "utf-8"]
    assert sys.stdout.encoding == "utf-8"


def test_written_text_is_utf8_encoded(monkeypatch):
    monkeypatch.setattr(sys, "platform", "win32")
    streams = _install_streams(monkeypatch)
    result = set_console_utf8()
    assert result is None
    out = streams["stdout"]
    out.write("日志")
    out.flush()
    assert out.buffer.getvalue() == "日志".encode("utf-8")


def test_linux_sets_locale(monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")
    _install_streams(monkeypatch)
    with mock.patch("ylineworker.console.locale.setlocale") as setlocale:
        result = set_console_utf8()
    assert result is None
    assert setlocale.call_args_list == [mock.call(locale.LC_ALL, "en_US.UTF-8")]


def test_locale_failure_is_ignored(monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")
    streams = _install_streams(monkeypatch)
    with mock.patch(
        "ylineworker.console.locale.setlocale", side_effect=locale.Error("no")
    ):
        result = set_console_utf8()
    assert result is None
    assert streams["stdout"].encoding == "utf-8"


def test_windows_leaves_locale_alone(monkeypatch):
    monkeypatch.setattr(sys, "platform", "win32")
    _install_streams(monkeypatch)
    with mock.patch("ylineworker.console.locale.setlocale") as setlocale:
        result = set_console_utf8()
    assert result is None
    assert setlocale.call_count == 0


def test_streams_without_reconfigure_are_kept(monkeypatch):
    monkeypatch.setattr(sys, "platform", "win32")
    buffer = io.StringIO()
    monkeypatch.setattr(sys, "stdout", buffer)
    monkeypatch.setattr(sys, "stderr", io.StringIO())
    monkeypatch.setattr(sys, "stdin", io.StringIO())
    set_console_utf8()
    assert sys.stdout is buffer
    sys.stdout.write("ok")
    assert buffer.getvalue() == "ok"