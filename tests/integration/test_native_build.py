"""End-to-end build with the host C compiler.

Skipped when no ``gcc`` is on PATH.
"""

import os
import shutil

import pytest

from xbuild.build.build_context import BuildContext, BuildSettings
from xbuild.build.task_builder import TaskGraphBuilder
from xbuild.errors import ToolInvocationError

pytestmark = pytest.mark.skipif(shutil.which("gcc") is None, reason="gcc not installed")


@pytest.fixture
def context(tmp_path):
    (tmp_path / "apps").mkdir()
    (tmp_path / "apps" / "host.rs").write_text("fn main() {}\n")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "isr.c").write_text("int isr(void) { return 1; }\n")
    settings = BuildSettings(platform="lpc17xx", app="host", toolchain="", native=True)
    return BuildContext.prepare(settings, tmp_path)


class TestNativeCompile:
    def test_compiles_then_skips(self, context):
        builder = TaskGraphBuilder(context)
        out = context.intermediate_path("isr.o")
        builder.compile_c("isr", out, context.src_path("isr.c"))

        first = builder.graph.invoke("isr")
        assert out.is_file()
        assert first.executed_count == 1

        source_time = os.stat(context.src_path("isr.c")).st_mtime
        os.utime(out, (source_time + 10, source_time + 10))
        builder.graph.reset()
        second = builder.graph.invoke("isr")
        assert second.executed_count == 0

    def test_compiler_error_surfaces(self, context):
        context.src_path("broken.c").write_text("int broken( {\n")
        builder = TaskGraphBuilder(context)
        out = context.intermediate_path("broken.o")
        builder.compile_c("broken", out, context.src_path("broken.c"))

        with pytest.raises(ToolInvocationError) as exc_info:
            builder.graph.invoke("broken")

        assert exc_info.value.target == "broken"
        assert exc_info.value.returncode != 0
        assert exc_info.value.stderr
        assert not out.exists()
