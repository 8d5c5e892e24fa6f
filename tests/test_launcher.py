"""Tests for the engine launcher."""

from unittest.mock import MagicMock, patch

import pytest

from chaosctl.launcher import BINARY_NAME, binary_name, launch, resolve_binary


def _fake_binary(tmp_path):
    path = tmp_path / binary_name()
    path.write_text("#!/bin/sh\n")
    return path


def test_binary_name_per_os():
    assert binary_name("Linux") == BINARY_NAME
    assert binary_name("Darwin") == BINARY_NAME
    assert binary_name("Windows") == f"{BINARY_NAME}.exe"


def test_resolve_binary(tmp_path):
    path = _fake_binary(tmp_path)
    assert resolve_binary(tmp_path) == path


def test_resolve_binary_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        resolve_binary(tmp_path)


def test_resolve_binary_override(tmp_path):
    path = tmp_path / "custom-engine"
    path.write_text("")
    assert resolve_binary(override=str(path)) == path


@patch("chaosctl.launcher.subprocess.Popen")
def test_launch_forwards_args_and_exit_code(mock_popen, tmp_path):
    path = _fake_binary(tmp_path)
    mock_popen.return_value.wait.return_value = 3
    code = launch(["--port", "8080"], base_dir=tmp_path)
    assert code == 3
    mock_popen.assert_called_once_with([str(path), "--port", "8080"])


@patch("chaosctl.launcher.subprocess.Popen")
def test_launch_signal_has_no_exit_code(mock_popen, tmp_path):
    _fake_binary(tmp_path)
    mock_popen.return_value.wait.return_value = -15
    assert launch(base_dir=tmp_path) is None


@patch("chaosctl.launcher.subprocess.Popen")
def test_launch_waits_for_child_after_ctrl_c(mock_popen, tmp_path):
    _fake_binary(tmp_path)
    proc = MagicMock()
    proc.wait.side_effect = [KeyboardInterrupt(), 0]
    mock_popen.return_value = proc
    assert launch(base_dir=tmp_path) == 0
    assert proc.wait.call_count == 2


def test_launch_missing_binary(tmp_path):
    with pytest.raises(FileNotFoundError):
        launch(base_dir=tmp_path)
