"""Crate identity and library artifact naming.

A crate's library artifact is named after the identity declared in its root
file, not after the file itself:

    #![crate_id = "kernel#1.2"]   ->  libkernel-<hash8>-1.2.rlib

where hash8 is the first 8 hex characters of SHA-256("kernel-1.2"). Files
without the marker use their stem and version "0.0". Other rules link
against a crate by this name, so it must be stable for unchanged content and
independent of build order.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from .source_scanner import read_source

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "0.0"

CRATE_ID_RE = re.compile(r'#!\[crate_id.*=.*"([a-zA-Z0-9_]+)(?:#([a-zA-Z0-9_.\-]+))?"\]')


@dataclass(frozen=True)
class CrateIdentity:
    """Name and version of a crate."""

    name: str
    version: str = DEFAULT_VERSION

    @property
    def digest(self) -> str:
        """First 8 hex characters of SHA-256 over ``name-version``."""
        return hashlib.sha256(f"{self.name}-{self.version}".encode("utf-8")).hexdigest()[:8]

    @property
    def cache_key(self) -> str:
        """Library artifact file name for this crate."""
        return f"lib{self.name}-{self.digest}-{self.version}.rlib"


def parse_crate_id(text: str, default_name: str) -> CrateIdentity:
    """Extract the crate identity from source text.

    The first ``crate_id`` marker wins. Without one the identity is
    ``(default_name, "0.0")``.
    """
    for line in text.splitlines():
        match = CRATE_ID_RE.search(line)
        if match:
            return CrateIdentity(match.group(1), match.group(2) or DEFAULT_VERSION)
    return CrateIdentity(default_name)


class CrateIdentityCache:
    """Per-invocation memo of crate identities keyed by source path."""

    def __init__(self) -> None:
        self._keys: Dict[Path, str] = {}

    def crate_id(self, path: Path) -> CrateIdentity:
        """Read ``path`` and return its crate identity.

        Raises:
            SourceNotFoundError: If the file is missing or cannot be read
        """
        path = Path(path)
        text = read_source(path)
        return parse_crate_id(text, path.stem)

    def identity_for(self, path: Path) -> str:
        """Library artifact name for the crate rooted at ``path``, memoized."""
        path = Path(path)
        key = self._keys.get(path)
        if key is None:
            key = self.crate_id(path).cache_key
            self._keys[path] = key
            logger.debug(f"Crate identity for {path}: {key}")
        return key

    def __len__(self) -> int:
        return len(self._keys)
