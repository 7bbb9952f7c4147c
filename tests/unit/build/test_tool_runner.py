"""Tests for toolchain process execution."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from xbuild.build.tool_runner import ToolRunner, _creation_flags
from xbuild.errors import ToolInvocationError


def completed(returncode=0, stdout=b"", stderr=b""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestCreationFlags:
    def test_windows_hides_console(self):
        with patch("sys.platform", "win32"), patch.object(subprocess, "CREATE_NO_WINDOW", 0x08000000, create=True):
            assert _creation_flags() == 0x08000000

    def test_posix_has_no_flags(self):
        with patch("sys.platform", "linux"):
            assert _creation_flags() == 0


class TestToolRunner:
    """Test subprocess wrapping and error mapping."""

    @patch("xbuild.build.tool_runner.subprocess.run")
    def test_run_success(self, mock_run, tmp_path):
        mock_run.return_value = completed()

        ToolRunner(cwd=tmp_path).run(["arm-none-eabi-gcc", "-c", "isr.c"], target="isr")

        args, kwargs = mock_run.call_args
        assert args[0] == ["arm-none-eabi-gcc", "-c", "isr.c"]
        assert kwargs["cwd"] == tmp_path
        assert kwargs["stdin"] == subprocess.DEVNULL

    @patch("xbuild.build.tool_runner.subprocess.run")
    def test_nonzero_exit_raises_with_stderr(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr=b"isr.c:1: error: expected ';'")

        with pytest.raises(ToolInvocationError) as exc_info:
            ToolRunner().run(["arm-none-eabi-gcc", "-c", "isr.c"], target="isr")

        error = exc_info.value
        assert error.returncode == 1
        assert error.target == "isr"
        assert "arm-none-eabi-gcc exited with code 1 while building isr" in str(error)
        assert "expected ';'" in str(error)

    @patch("xbuild.build.tool_runner.subprocess.run", side_effect=FileNotFoundError("no such file"))
    def test_missing_executable(self, mock_run):
        with pytest.raises(ToolInvocationError) as exc_info:
            ToolRunner().run(["rustc", "app.rs"], target="app")

        assert exc_info.value.returncode is None
        assert "Failed to run rustc while building app" in str(exc_info.value)

    @patch("xbuild.build.tool_runner.subprocess.run")
    def test_stdout_redirect_removed_on_failure(self, mock_run, tmp_path):
        listing = tmp_path / "zinc.lst"
        mock_run.return_value = completed(returncode=2)

        with pytest.raises(ToolInvocationError):
            ToolRunner().run(["arm-none-eabi-objdump", "-D", "zinc.elf"], target="lst", stdout_path=listing)

        assert not listing.exists()

    @patch("xbuild.build.tool_runner.subprocess.run")
    def test_warnings_logged(self, mock_run, caplog):
        mock_run.return_value = completed(stderr=b"warning: unused variable")

        ToolRunner().run(["rustc", "app.rs"], target="app")

        assert "unused variable" in caplog.text

    @patch("xbuild.build.tool_runner.subprocess.run")
    def test_capture_returns_stdout(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="text data bss\n", stderr="")

        assert ToolRunner().capture(["arm-none-eabi-size", "zinc.elf"], target="size") == "text data bss\n"
