"""
Module reference discovery for systems-language sources.

This module re-derives, from source text alone, which files a crate root
pulls in through module declarations:

    mod hal;                      -> hal.rs, else hal/mod.rs
    pub mod drivers;              -> drivers.rs, else drivers/mod.rs
    #[path = "plat/x.rs"]
    mod x;                        -> plat/x.rs (relative to the declaring file)
    #[path = "plat/x.rs"] mod x;  -> plat/x.rs

No compiler is invoked. Inline modules (``mod foo { ... }``) are not file
references and are ignored.
"""

import logging
import re
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import SourceNotFoundError, UnreadableSourceError, UnresolvedModuleError

logger = logging.getLogger(__name__)

SOURCE_EXTENSION = ".rs"

_VISIBILITY = r"(?:pub(?:\s*\([^)]*\))?\s+)?"

# Module declaration, optionally attributed and visibility-qualified
MOD_RE = re.compile(r"^\s*(?:#\[.+\]\s*)*" + _VISIBILITY + r"mod\s+(\w+)\s*;")

# Path override on a line of its own
PATH_RE = re.compile(r'^\s*#\[path\s*=\s*"([^"]+)"\]')

# Path override and module declaration on the same line
MOD_PATH_RE = re.compile(r'^\s*#\[path\s*=\s*"([^"]+)"\]\s*' + _VISIBILITY + r"mod\s+\w+\s*;")


def read_source(path: Path, included_from: Optional[object] = None) -> str:
    """Read a source file as UTF-8 text.

    Raises:
        SourceNotFoundError: If the file does not exist
        UnreadableSourceError: If it exists but cannot be read or decoded
    """
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise SourceNotFoundError(path, included_from)
    except (OSError, UnicodeDecodeError) as e:
        raise UnreadableSourceError(path, e, included_from)


class ScanState(Enum):
    """State of the line scanner."""

    AWAITING_DIRECTIVE = "awaiting_directive"
    SAW_PATH_OVERRIDE = "saw_path_override"


class SourceScanner:
    """
    Extracts the source paths directly referenced by one file.

    The scanner walks the file line by line with a two-state machine: a
    ``#[path = "..."]`` line moves it to SAW_PATH_OVERRIDE, and the next
    non-blank line either consumes the override (a module declaration) or
    drops it.
    """

    def __init__(self, extension: str = SOURCE_EXTENSION):
        """
        Initialize source scanner.

        Args:
            extension: Source file extension used for implicit module paths
        """
        self.extension = extension

    def scan(self, path: Path, included_from: Optional[object] = None) -> List[Path]:
        """
        Scan one file for referenced source paths.

        Args:
            path: File to scan
            included_from: Who referenced this file (for error messages)

        Returns:
            Referenced paths in first-occurrence order, duplicates collapsed

        Raises:
            SourceNotFoundError: If the file cannot be read
            UnresolvedModuleError: If a module declaration matches no file
        """
        path = Path(path)
        text = read_source(path, included_from)

        base_dir = path.parent
        found: Dict[Path, None] = {}
        state = ScanState.AWAITING_DIRECTIVE
        override: Optional[str] = None

        for line in text.splitlines():
            if not line.strip():
                continue

            combined = MOD_PATH_RE.match(line)
            if combined:
                found.setdefault(base_dir / combined.group(1))
                state, override = ScanState.AWAITING_DIRECTIVE, None
                continue

            declaration = MOD_RE.match(line)
            if declaration:
                if state is ScanState.SAW_PATH_OVERRIDE and override is not None:
                    found.setdefault(base_dir / override)
                else:
                    found.setdefault(self.module_to_source(path, declaration.group(1)))
                state, override = ScanState.AWAITING_DIRECTIVE, None
                continue

            directive = PATH_RE.match(line)
            if directive:
                state, override = ScanState.SAW_PATH_OVERRIDE, directive.group(1)
            else:
                state, override = ScanState.AWAITING_DIRECTIVE, None

        references = list(found)
        logger.debug(f"Scanned {path}: {len(references)} module reference(s)")
        return references

    def module_to_source(self, source: Path, module: str) -> Path:
        """
        Map an implicit module declaration to a file.

        Args:
            source: File containing the declaration
            module: Declared module name

        Returns:
            ``<dir>/<module><ext>`` if it exists, else ``<dir>/<module>/mod<ext>``

        Raises:
            UnresolvedModuleError: If neither candidate exists
        """
        base_dir = Path(source).parent
        sibling = base_dir / f"{module}{self.extension}"
        if sibling.is_file():
            return sibling
        nested = base_dir / module / f"mod{self.extension}"
        if nested.is_file():
            return nested
        raise UnresolvedModuleError(module, Path(source), [sibling, nested])
