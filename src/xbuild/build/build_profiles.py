"""Build Profile Configuration.

A profile owns the optimization flags of the systems-language compiler. The
debug toggle selects one of two fixed profiles; everything else about the
compiler command comes from the platform.

Design:
    Profiles declare the flags they control as prefixes. Flags from other
    sources that match a controlled prefix are stripped before the profile's
    own flags are appended, so a profile (or a per-rule override) always wins
    without ad-hoc string replacement.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List

OPT_LEVEL_PREFIX = "-Copt-level="


class BuildProfile(Enum):
    """Build profile enum for type-safe profile selection."""

    RELEASE = "release"
    DEBUG = "debug"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_debug(cls, debug: bool) -> "BuildProfile":
        return cls.DEBUG if debug else cls.RELEASE


@dataclass(frozen=True)
class ProfileFlags:
    """Flags contributed by one build profile.

    Attributes:
        name: Profile identifier (matches BuildProfile enum value)
        description: Human-readable profile description
        compile_flags: Systems-compiler flags for this profile
        controlled_patterns: Flag prefixes this profile controls
    """

    name: str
    description: str
    compile_flags: tuple[str, ...]
    controlled_patterns: tuple[str, ...]


PROFILES: dict[BuildProfile, ProfileFlags] = {
    BuildProfile.RELEASE: ProfileFlags(
        name="release",
        description="Optimized build (default)",
        compile_flags=(f"{OPT_LEVEL_PREFIX}2",),
        controlled_patterns=(OPT_LEVEL_PREFIX,),
    ),
    BuildProfile.DEBUG: ProfileFlags(
        name="debug",
        description="Unoptimized build for debugging",
        compile_flags=(f"{OPT_LEVEL_PREFIX}0",),
        controlled_patterns=(OPT_LEVEL_PREFIX,),
    ),
}


def get_profile(profile: BuildProfile) -> ProfileFlags:
    """Get profile configuration by enum."""
    return PROFILES[profile]


def filter_controlled_flags(flags: Iterable[str], patterns: Iterable[str]) -> List[str]:
    """Remove every flag that starts with one of ``patterns``."""
    prefixes = tuple(patterns)
    return [f for f in flags if not f.startswith(prefixes)]


def merge_compile_flags(platform_flags: Iterable[str], profile_flags: ProfileFlags) -> List[str]:
    """Strip profile-controlled flags from ``platform_flags`` and append the profile's own.

    Args:
        platform_flags: Flags derived from the platform table
        profile_flags: The profile flags to apply

    Returns:
        Merged list of compile flags
    """
    return filter_controlled_flags(platform_flags, profile_flags.controlled_patterns) + list(
        profile_flags.compile_flags
    )


def with_opt_level(flags: Iterable[str], level: str) -> List[str]:
    """Return ``flags`` with the optimization level replaced by ``level``.

    Used for per-rule overrides; the global flag set is left untouched.

    Example:
        >>> with_opt_level(["--cfg", "mcu_k20", "-Copt-level=2"], "s")
        ['--cfg', 'mcu_k20', '-Copt-level=s']
    """
    return filter_controlled_flags(flags, (OPT_LEVEL_PREFIX,)) + [f"{OPT_LEVEL_PREFIX}{level}"]
