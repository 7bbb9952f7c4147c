"""Build rule declarations and the rule registry.

Rules are declared by symbolic name and refer to each other either by name
(SymbolicRef) or by file (LiteralPath). Before a rule reaches the task graph
every SymbolicRef is rewritten to the output path of the rule it names, so
the graph only ever sees files.

Design:
    - Rule is frozen once constructed
    - The registry is append-only during rules-file evaluation and read-only
      while the graph executes
    - Re-registering a name replaces the earlier rule (last write wins) and
      logs a warning; ``strict=True`` rejects duplicates instead
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from ..errors import DuplicateRuleError, MissingRuleError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SymbolicRef:
    """Reference to another rule by name."""

    name: str

    def __str__(self) -> str:
        return f":{self.name}"


@dataclass(frozen=True)
class LiteralPath:
    """Reference to a file on disk."""

    path: Path

    def __str__(self) -> str:
        return str(self.path)


Dependency = Union[SymbolicRef, LiteralPath]
DependencyLike = Union[SymbolicRef, LiteralPath, str, Path]


def ref(name: str) -> SymbolicRef:
    """Shorthand for ``SymbolicRef(name)`` in rules files."""
    return SymbolicRef(name)


def normalize_deps(deps: Union[None, DependencyLike, Iterable[DependencyLike]]) -> tuple[Dependency, ...]:
    """Normalize a dependency argument to a tuple of tagged dependencies.

    Accepts None, a single dependency, or an iterable of them. Plain strings
    and Paths become LiteralPath.

    Example:
        >>> normalize_deps(["link.ld", ref("app")])
        (LiteralPath(path=PosixPath('link.ld')), SymbolicRef(name='app'))
    """
    if deps is None:
        return ()
    if isinstance(deps, (SymbolicRef, LiteralPath, str, Path)):
        deps = [deps]

    normalized: List[Dependency] = []
    for dep in deps:
        if isinstance(dep, (SymbolicRef, LiteralPath)):
            normalized.append(dep)
        elif isinstance(dep, (str, Path)):
            normalized.append(LiteralPath(Path(dep)))
        else:
            raise TypeError(f"Unsupported dependency {dep!r}: expected a path or SymbolicRef")
    return tuple(normalized)


@dataclass(frozen=True)
class Rule:
    """One declared build rule.

    Attributes:
        name: Unique symbolic name
        kind: Artifact kind (compile_rust, compile_c, link, listing, binary, ...)
        produce: Artifact path this rule produces
        source: Primary input, if the rule has one
        deps: Declared dependencies
        crate_type: Crate type passed to the compiler (e.g. "lib")
        optimize: Per-rule optimization level overriding the profile
        lto: Request link-time optimization for object outputs
        llvm_pass: Extra codegen pass
        ignore_warnings: Compiler lints to allow
        out_dir: Emit into the build directory instead of ``produce``
        script: Linker script for link rules
    """

    name: str
    kind: str
    produce: Path
    source: Optional[Path] = None
    deps: tuple[Dependency, ...] = ()
    crate_type: Optional[str] = None
    optimize: Optional[str] = None
    lto: bool = True
    llvm_pass: Optional[str] = None
    ignore_warnings: tuple[str, ...] = ()
    out_dir: bool = False
    script: Optional[Path] = None


class RuleRegistry:
    """Stores rules by symbolic name."""

    def __init__(self, strict: bool = False):
        """
        Args:
            strict: Reject duplicate names instead of replacing the earlier rule
        """
        self.strict = strict
        self._rules: Dict[str, Rule] = {}

    def register(self, rule: Rule) -> Rule:
        """Add ``rule`` under its name.

        Raises:
            DuplicateRuleError: In strict mode, if the name is taken
        """
        if rule.name in self._rules:
            if self.strict:
                raise DuplicateRuleError(rule.name)
            logger.warning(f"Rule {rule.name} registered twice; the later declaration replaces the earlier one")
        self._rules[rule.name] = rule
        return rule

    def lookup(self, name: str, referenced_by: Optional[str] = None) -> Rule:
        """Return the rule registered as ``name``.

        Raises:
            MissingRuleError: If no such rule exists
        """
        rule = self._rules.get(name)
        if rule is None:
            raise MissingRuleError(name, referenced_by)
        return rule

    def output_of(self, name: str, referenced_by: Optional[str] = None) -> Path:
        """Artifact path of the rule registered as ``name``."""
        return self.lookup(name, referenced_by).produce

    def resolve_deps(self, deps: Iterable[Dependency], referenced_by: Optional[str] = None) -> List[Path]:
        """Rewrite dependencies to file paths, preserving order.

        Raises:
            MissingRuleError: If a SymbolicRef names an unregistered rule
        """
        paths: List[Path] = []
        for dep in deps:
            if isinstance(dep, SymbolicRef):
                paths.append(self.output_of(dep.name, referenced_by))
            else:
                paths.append(dep.path)
        return paths

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)
