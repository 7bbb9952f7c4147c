"""
Artifact size reporting.

Parses the Berkeley-format output of ``<toolchain>-size``:

       text    data     bss     dec     hex filename
       1204      16     532    1752     6d8 build/zinc.elf
"""

from dataclasses import dataclass
from pathlib import Path

from ..errors import SizeReportError
from ..output import log, log_detail


@dataclass(frozen=True)
class SizeInfo:
    """Section sizes of a linked artifact."""

    text: int  # Program code and read-only data
    data: int  # Initialized data
    bss: int  # Zero-initialized data
    total: int  # text + data + bss

    @property
    def total_hex(self) -> str:
        return f"{self.total:x}"

    @staticmethod
    def parse(size_output: str) -> "SizeInfo":
        """
        Parse Berkeley-format ``size`` output.

        Uses the last non-empty line, which describes the artifact.

        Raises:
            SizeReportError: If the line does not hold four numeric columns
        """
        lines = [line for line in size_output.splitlines() if line.strip()]
        if not lines:
            raise SizeReportError("Empty size output")

        columns = lines[-1].split()
        try:
            text, data, bss, total = (int(c) for c in columns[:4])
        except ValueError:
            raise SizeReportError(f"Unexpected size output: {lines[-1]!r}")

        return SizeInfo(text=text, data=data, bss=bss, total=total)


def log_size_info(artifact: Path, info: SizeInfo) -> None:
    """Log section sizes aligned on the total column."""
    align = len(str(info.total))
    log(f"Statistics for {artifact.name}")
    log_detail(f".text: {str(info.text).rjust(align)} bytes", indent=2)
    log_detail(f".data: {str(info.data).rjust(align)} bytes", indent=2)
    log_detail(f".bss:  {str(info.bss).rjust(align)} bytes", indent=2)
    log_detail("=" * (align + 6), indent=9)
    log_detail(f"TOTAL: {info.total} bytes (0x{info.total_hex})", indent=2)
