"""Pytest configuration and fixtures for xbuild tests.

xbuild.output keeps module-level state (verbosity, output stream, timer)
and the CLI changes it, so every test starts from a quiet default.
Streams closed by a failing test are restored as well; Python 3.13 reports
"I/O operation on closed file" during teardown otherwise
(https://github.com/pytest-dev/pytest/issues/11439).
"""

import sys
import warnings

import pytest

from xbuild import output

if sys.version_info >= (3, 13):
    warnings.filterwarnings("ignore", category=ResourceWarning)


def _restore_streams() -> None:
    if sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if sys.stderr.closed:
        sys.stderr = sys.__stderr__


@pytest.fixture(autouse=True)
def _reset_output_state():  # noqa: PT004
    """Restore xbuild.output globals and stdio after each test."""
    stream = output._output_stream
    verbose = output._verbose
    yield
    output._output_stream = stream
    output.set_verbose(verbose)
    _restore_streams()


@pytest.hookimpl(hookwrapper=True, trylast=True)
def pytest_runtest_teardown(item):  # noqa: ARG001
    yield
    _restore_streams()
