"""Transitive module dependency resolution.

Follows SourceScanner results from a crate root to arbitrary depth. Modules
may reference each other in cycles, so exploration keeps a visited set and
never scans a file twice.
"""

import logging
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Set

from .source_scanner import SourceScanner

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Computes the transitive closure of module references.

    Scan results are memoized per file for the lifetime of the resolver, so
    two crate roots sharing modules only pay for one scan of each file. One
    resolver is created per build invocation.
    """

    def __init__(self, scanner: Optional[SourceScanner] = None):
        self.scanner = scanner or SourceScanner()
        self._scanned: Dict[Path, List[Path]] = {}

    def direct_references(self, path: Path, included_from: Optional[object] = None) -> List[Path]:
        """Scanner results for one file, memoized."""
        path = Path(path)
        if path not in self._scanned:
            self._scanned[path] = self.scanner.scan(path, included_from)
        return self._scanned[path]

    def resolve_transitive(self, root: Path) -> FrozenSet[Path]:
        """Collect every file reachable from ``root`` through module declarations.

        Args:
            root: Crate root source file

        Returns:
            Set of referenced paths. ``root`` itself is included only when some
            module refers back to it.

        Raises:
            SourceNotFoundError: If the root or a referenced file is missing or unreadable
            UnresolvedModuleError: If a module declaration matches no file
        """
        root = Path(root)
        collected: Set[Path] = set()
        visited: Set[Path] = {root}
        pending = [(root, "__ROOT__")]

        while pending:
            current, parent = pending.pop()
            for ref in self.direct_references(current, parent):
                collected.add(ref)
                if ref not in visited:
                    visited.add(ref)
                    pending.append((ref, current))

        logger.debug(f"Resolved {len(collected)} dependency file(s) for {root}")
        return frozenset(collected)
