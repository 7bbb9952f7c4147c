"""Shared fixtures for build tests: a small firmware project and a fake toolchain."""

from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from xbuild.build.build_context import BuildContext, BuildSettings
from xbuild.platform_configs import PlatformTable

TABLE = {
    "platforms": {
        "lpc17xx": {"arch": "cortex_m3", "config": "mcu_lpc17xx", "features": ["mcu_has_spi"]},
        "k20": {"arch": "cortex_m4", "config": "mcu_k20"},
    },
    "architectures": {
        "cortex_m3": {"arch": "armv7-m", "target": "thumbv7m-none-eabi", "cpu": "cortex-m3"},
        "cortex_m4": {"arch": "armv7e-m", "target": "thumbv7em-none-eabi", "cpu": "cortex-m4"},
    },
    "features": ["multitasking"],
}


class RecordingRunner:
    """Stands in for the toolchain: records each command and creates its output file."""

    def __init__(self, size_output: str = ""):
        self.commands: List[List[str]] = []
        self.targets: List[str] = []
        self.size_output = size_output

    def run(self, command: Sequence[str], target: str, stdout_path: Optional[Path] = None) -> None:
        cmd = [str(c) for c in command]
        self.commands.append(cmd)
        self.targets.append(target)
        if stdout_path is not None:
            Path(stdout_path).write_text("listing\n")
            return
        output = self._output_of(cmd)
        if output is not None:
            Path(output).parent.mkdir(parents=True, exist_ok=True)
            Path(output).write_text(f"built by {cmd[0]}\n")

    def capture(self, command: Sequence[str], target: str) -> str:
        self.commands.append([str(c) for c in command])
        self.targets.append(target)
        return self.size_output

    @staticmethod
    def _output_of(cmd: List[str]) -> Optional[str]:
        if "-o" in cmd:
            return cmd[cmd.index("-o") + 1]
        if len(cmd) >= 3 and cmd[1] == "cr":
            return cmd[2]
        if cmd[0].endswith("objcopy"):
            return cmd[2]
        return None

    def tools(self) -> List[str]:
        return [cmd[0] for cmd in self.commands]


@pytest.fixture
def platform_table():
    return PlatformTable.from_dict(TABLE)


@pytest.fixture
def project(tmp_path):
    """Firmware project with one application and a small module tree.

    apps/blink.rs -> mod hal; mod util;
    hal/mod.rs    -> mod gpio;
    """
    root = tmp_path / "firmware"
    (root / "apps").mkdir(parents=True)
    (root / "apps" / "blink.rs").write_text("mod hal;\nmod util;\n\nfn main() {}\n")
    (root / "apps" / "util.rs").write_text("pub fn delay() {}\n")
    (root / "apps" / "hal").mkdir()
    (root / "apps" / "hal" / "mod.rs").write_text("pub mod gpio;\n")
    (root / "apps" / "hal" / "gpio.rs").write_text("pub fn toggle() {}\n")

    (root / "src" / "hal" / "lpc17xx").mkdir(parents=True)
    (root / "src" / "hal" / "lpc17xx" / "layout.ld").write_text("SECTIONS {}\n")
    (root / "src" / "isr.c").write_text("void isr(void) {}\n")
    (root / "src" / "main.rs").write_text('#![crate_id = "zinc#0.1"]\npub mod hal;\n')
    (root / "src" / "hal.rs").write_text("pub fn init() {}\n")
    return root.resolve()


@pytest.fixture
def settings():
    return BuildSettings(platform="lpc17xx", app="blink", toolchain_libs="/opt/gcc/lib")


@pytest.fixture
def context(project, settings, platform_table):
    return BuildContext.prepare(settings, project, table=platform_table)


@pytest.fixture
def runner():
    return RecordingRunner()
