"""Build Context - Aggregated build configuration.

This module defines:
- BuildSettings: Raw selections from the environment and the command line
- BuildContext: The fully resolved, immutable build configuration

Design:
    BuildSettings flows from CLI/environment into BuildContext.prepare(), which
    validates the platform selection, purges the build directory on a platform
    switch, computes every flag set once, and returns a frozen BuildContext.
    The context is passed explicitly to every consumer (task builder, graph);
    nothing reads process-wide state after preparation.

    The only mutable members are the invocation-scoped collaborators the
    context owns: the append-only RuleRegistry, the CrateIdentityCache and the
    DependencyResolver's scan memo.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from ..errors import ConfigurationError
from ..platform_configs import ArchSpec, PlatformSpec, PlatformTable, load_platform_table
from .build_profiles import BuildProfile, ProfileFlags, get_profile, merge_compile_flags
from .crate_identity import CrateIdentityCache
from .dependency_resolver import DependencyResolver
from .rule_registry import RuleRegistry

logger = logging.getLogger(__name__)

PLATFORM_MARKER = ".platform"
APP_MARKER = ".app"
DEFAULT_TOOLCHAIN = "arm-none-eabi"
DEFAULT_RUSTC = "rustc"
DEFAULT_TOOLCHAIN_LIBS = "/usr/lib/gcc/arm-none-eabi"

_FALSE_VALUES = {"", "0", "false", "no", "off"}


def _env_flag(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() not in _FALSE_VALUES


@dataclass(frozen=True)
class BuildSettings:
    """Selections that drive one build invocation.

    Attributes:
        platform: Platform name from the platform table (required)
        app: Application name, resolved to ``apps/<app>.rs`` (required)
        debug: Select the debug profile instead of release
        toolchain: GNU toolchain prefix (``<prefix>-ld``, ``<prefix>-gcc``, ...)
        rustc: Systems-language compiler executable
        toolchain_libs: Directory holding per-arch libgcc directories
        native: Skip cross-compilation target flags
        platforms_file: Platform table override (None uses the packaged table)
        strict_rules: Reject duplicate rule names
    """

    platform: Optional[str] = None
    app: Optional[str] = None
    debug: bool = False
    toolchain: str = DEFAULT_TOOLCHAIN
    rustc: str = DEFAULT_RUSTC
    toolchain_libs: str = DEFAULT_TOOLCHAIN_LIBS
    native: bool = False
    platforms_file: Optional[Path] = None
    strict_rules: bool = False

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None, **overrides: object) -> "BuildSettings":
        """Read settings from environment variables, then apply overrides.

        Overrides whose value is None are ignored, so CLI options that were
        not given fall back to the environment.

        Environment variables:
            PLATFORM, APP, DEBUG, XBUILD_TOOLCHAIN, XBUILD_RUSTC,
            XBUILD_TOOLCHAIN_LIBS, XBUILD_NATIVE, XBUILD_PLATFORMS
        """
        env = os.environ if environ is None else environ
        platforms_file = env.get("XBUILD_PLATFORMS")
        values: dict[str, object] = {
            "platform": env.get("PLATFORM") or None,
            "app": env.get("APP") or None,
            "debug": _env_flag(env.get("DEBUG")),
            "toolchain": env.get("XBUILD_TOOLCHAIN") or DEFAULT_TOOLCHAIN,
            "rustc": env.get("XBUILD_RUSTC") or DEFAULT_RUSTC,
            "toolchain_libs": env.get("XBUILD_TOOLCHAIN_LIBS") or DEFAULT_TOOLCHAIN_LIBS,
            "native": _env_flag(env.get("XBUILD_NATIVE")),
            "platforms_file": Path(platforms_file) if platforms_file else None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]


@dataclass(frozen=True)
class BuildContext:
    """Fully resolved build configuration, created once per invocation.

    Attributes:
        root_dir: Project root (contains src/, apps/, build/)
        platform: Selected platform
        arch: Architecture of the selected platform
        profile: Build profile (debug or release)
        profile_flags: Resolved profile flags
        app_name: Selected application name
        app_path: Application crate root (apps/<app>.rs)
        toolchain: GNU toolchain prefix
        rustc: Systems-language compiler executable
        rust_flags: Global systems-compiler flags
        ld_flags: Global linker flags
        c_flags: Global C compiler flags
        registry: Rule registry for this invocation
        identities: Crate identity memo for this invocation
        resolver: Module dependency resolver for this invocation
    """

    root_dir: Path
    platform: PlatformSpec
    arch: ArchSpec
    profile: BuildProfile
    profile_flags: ProfileFlags
    app_name: str
    app_path: Path
    toolchain: str
    rustc: str
    rust_flags: tuple[str, ...]
    ld_flags: tuple[str, ...]
    c_flags: tuple[str, ...]
    registry: RuleRegistry = field(default_factory=RuleRegistry, compare=False)
    identities: CrateIdentityCache = field(default_factory=CrateIdentityCache, compare=False)
    resolver: DependencyResolver = field(default_factory=DependencyResolver, compare=False)

    @classmethod
    def prepare(
        cls,
        settings: BuildSettings,
        root_dir: Path,
        table: Optional[PlatformTable] = None,
    ) -> "BuildContext":
        """Validate the selection, prepare build directories and compute flags.

        Steps:
        1. Resolve platform and architecture from the table
        2. Resolve the application crate root
        3. Purge build/ if the last build targeted another platform
        4. Create build/ and build/intermediate/, record the platform
        5. Compute compiler, linker and C flags

        Raises:
            ConfigurationError: On a missing or unknown platform, an unknown
                architecture, or a missing application
        """
        root_dir = Path(root_dir).resolve()
        if table is None:
            table = load_platform_table(settings.platforms_file)

        if not settings.platform:
            raise ConfigurationError(
                f"Undefined platform, available platforms: {', '.join(sorted(table.platforms))}"
            )
        platform = table.platform(settings.platform)
        arch = table.arch_for(platform)

        if not settings.app:
            raise ConfigurationError("Undefined application, set APP or pass --app")
        app_path = root_dir / "apps" / f"{settings.app}.rs"
        if not app_path.is_file():
            raise ConfigurationError(f"Application {settings.app} not found in apps ({app_path})")

        build_dir = root_dir / "build"
        cls._switch_platform(build_dir, platform.name)

        profile = BuildProfile.from_debug(settings.debug)
        profile_flags = get_profile(profile)

        features = list(table.features) + list(platform.features)
        platform_flags: list[str] = []
        if not settings.native:
            platform_flags += ["--target", arch.target, f"-Ctarget-cpu={arch.cpu}"]
        platform_flags += ["--cfg", platform.config, "--cfg", f"arch_{platform.arch}"]
        for feature in features:
            platform_flags += ["--cfg", f"cfg_{feature}"]

        rust_flags = merge_compile_flags(platform_flags, profile_flags)
        ld_flags = [f"-L{Path(settings.toolchain_libs) / arch.lib_dir}"]
        c_flags = [] if settings.native else ["-mthumb", f"-mcpu={arch.cpu}"]

        logger.info(
            f"Prepared build context: platform={platform.name} arch={arch.name} "
            f"profile={profile.value} app={settings.app}"
        )

        return cls(
            root_dir=root_dir,
            platform=platform,
            arch=arch,
            profile=profile,
            profile_flags=profile_flags,
            app_name=settings.app,
            app_path=app_path,
            toolchain=settings.toolchain,
            rustc=settings.rustc,
            rust_flags=tuple(rust_flags),
            ld_flags=tuple(ld_flags),
            c_flags=tuple(c_flags),
            registry=RuleRegistry(strict=settings.strict_rules),
        )

    @staticmethod
    def _switch_platform(build_dir: Path, platform_name: str) -> None:
        """Purge ``build_dir`` when the recorded platform differs, then record the new one."""
        marker = build_dir / PLATFORM_MARKER
        previous = marker.read_text(encoding="utf-8").strip() if marker.is_file() else None

        if previous and previous != platform_name:
            logger.info(f"Platform changed from {previous} to {platform_name}, purging {build_dir}")
            shutil.rmtree(build_dir)

        (build_dir / "intermediate").mkdir(parents=True, exist_ok=True)
        marker.write_text(platform_name, encoding="utf-8")

    def root_path(self, *parts: str) -> Path:
        return self.root_dir.joinpath(*parts)

    def src_path(self, *parts: str) -> Path:
        return self.root_dir.joinpath("src", *parts)

    def build_path(self, *parts: str) -> Path:
        return self.root_dir.joinpath("build", *parts)

    def intermediate_path(self, *parts: str) -> Path:
        return self.root_dir.joinpath("build", "intermediate", *parts)

    def platform_path(self, *parts: str) -> Path:
        """Path under ``src/hal/<platform>/``."""
        return self.src_path("hal", self.platform.name, *parts)

    def tool(self, name: str) -> str:
        """Toolchain executable, e.g. ``tool("ld")`` -> ``arm-none-eabi-ld``."""
        return f"{self.toolchain}-{name}" if self.toolchain else name

    def identity_for(self, source: Path) -> str:
        """Library artifact name for the crate rooted at ``source``."""
        return self.identities.identity_for(source)

    def rlib_path(self, source: Path) -> Path:
        """Build-directory path of the library artifact for ``source``."""
        return self.build_path(self.identity_for(source))

    @property
    def profile_name(self) -> str:
        return self.profile.value
