import sys
from pathlib import Path

import pytest

from ylineworker.appdata import get_app_data_dir, get_executable_path


def test_linux_uses_home(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.setenv("HOME", str(tmp_path))
    assert get_app_data_dir() == tmp_path


def test_windows_uses_appdata(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, "platform", "win32")
    monkeypatch.setenv("APPDATA", str(tmp_path / "Roaming"))
    assert get_app_data_dir() == tmp_path / "Roaming"


def test_empty_home_gives_none(monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.setenv("HOME", "")
    assert get_app_data_dir() is None


def test_missing_home_gives_none(monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.delenv("HOME", raising=False)
    assert get_app_data_dir() is None


def test_other_platform_gives_none(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, "platform", "darwin")
    monkeypatch.setenv("HOME", str(tmp_path))
    assert get_app_data_dir() is None


def test_executable_path_is_script_directory(monkeypatch, tmp_path):
    script = tmp_path / "prog.py"
    script.write_text("")
    monkeypatch.delattr(sys, "frozen", raising=False)
    monkeypatch.setattr(sys, "argv", [str(script)])
    assert get_executable_path() == tmp_path.resolve()


def test_executable_path_when_frozen(monkeypatch, tmp_path):
    exe = tmp_path / "bin" / "worker"
    exe.parent.mkdir()
    exe.write_text("")
    monkeypatch.setattr(sys, "frozen", True, raising=False)
    monkeypatch.setattr(sys, "executable", str(exe))
    assert get_executable_path() == exe.parent.resolve()


def test_executable_path_unknown_raises(monkeypatch):
    monkeypatch.delattr(sys, "frozen", raising=False)
    monkeypatch.setattr(sys, "argv", [""])
    with pytest.raises(RuntimeError):
        get_executable_path()


def test_executable_path_is_absolute(monkeypatch, tmp_path):
    monkeypatch.delattr(sys, "frozen", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "argv", ["relative_prog.py"])
    result = get_executable_path()
    assert result.is_absolute()
    assert result == Path(tmp_path).resolve()