"""Platform and architecture tables for cross-compilation.

The table maps each platform to an architecture, a cfg flag and optional
features, and each architecture to a compiler target triple, a CPU and the
toolchain library directory name. A default table ships with the package as
``platforms.json``; a project may supply its own file with the same shape:

    {
      "platforms":     {"lpc17xx": {"arch": "cortex_m3", "config": "mcu_lpc17xx",
                                    "features": ["mcu_has_spi"]}},
      "architectures": {"cortex_m3": {"arch": "armv7-m",
                                      "target": "thumbv7m-none-eabi",
                                      "cpu": "cortex-m3"}},
      "features":      ["multitasking"]
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

from ..errors import ConfigurationError

DEFAULT_TABLE = "platforms.json"


@dataclass(frozen=True)
class ArchSpec:
    """Compiler target settings for one CPU architecture."""

    name: str
    target: str
    cpu: str
    lib_dir: str


@dataclass(frozen=True)
class PlatformSpec:
    """One selectable platform."""

    name: str
    arch: str
    config: str
    features: tuple[str, ...] = ()


@dataclass(frozen=True)
class PlatformTable:
    """Parsed platform/arch/feature table."""

    platforms: dict[str, PlatformSpec] = field(default_factory=dict)
    architectures: dict[str, ArchSpec] = field(default_factory=dict)
    features: tuple[str, ...] = ()

    def platform(self, name: str) -> PlatformSpec:
        """Look up a platform by name.

        Raises:
            ConfigurationError: If the platform is unknown; the message lists
                the available platforms.
        """
        spec = self.platforms.get(name)
        if spec is None:
            raise ConfigurationError(
                f"Undefined platform {name}, available platforms: {', '.join(sorted(self.platforms))}"
            )
        return spec

    def arch_for(self, platform: PlatformSpec) -> ArchSpec:
        """Look up the architecture of a platform.

        Raises:
            ConfigurationError: If the architecture is not in the table.
        """
        arch = self.architectures.get(platform.arch)
        if arch is None:
            raise ConfigurationError(
                f"Undefined arch {platform.arch} for platform {platform.name}, "
                f"available architectures: {', '.join(sorted(self.architectures))}"
            )
        return arch

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlatformTable":
        """Build a table from its JSON representation.

        Raises:
            ConfigurationError: If a required key is missing.
        """
        try:
            platforms = {
                name: PlatformSpec(
                    name=name,
                    arch=entry["arch"],
                    config=entry["config"],
                    features=tuple(entry.get("features", [])),
                )
                for name, entry in data.get("platforms", {}).items()
            }
            architectures = {
                name: ArchSpec(
                    name=name,
                    target=entry["target"],
                    cpu=entry["cpu"],
                    lib_dir=entry.get("arch", name),
                )
                for name, entry in data.get("architectures", {}).items()
            }
        except (KeyError, AttributeError, TypeError) as e:
            raise ConfigurationError(f"Malformed platform table: missing or invalid key {e}")

        return cls(
            platforms=platforms,
            architectures=architectures,
            features=tuple(data.get("features", [])),
        )


def load_platform_table(path: Path | None = None) -> PlatformTable:
    """Load a platform table from ``path`` or from the packaged default.

    Raises:
        ConfigurationError: If the file is missing or not valid JSON.
    """
    try:
        if path is not None:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            table_file = resources.files(__package__).joinpath(DEFAULT_TABLE)
            with table_file.open("r", encoding="utf-8") as f:
                data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Platform table not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Platform table {path or DEFAULT_TABLE} is not valid JSON: {e}")

    return PlatformTable.from_dict(data)
