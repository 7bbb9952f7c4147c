"""Exception hierarchy for xbuild.

All fatal build conditions derive from XBuildError so the CLI can report
them uniformly. Each message names the offending rule, file or setting.

    XBuildError
    ├── ConfigurationError        bad selection or platform table
    ├── ResolutionError           discovery failures
    │   ├── UnresolvedModuleError
    │   ├── SourceNotFoundError
    │   │   └── UnreadableSourceError
    │   ├── MissingRuleError
    │   ├── DuplicateRuleError
    │   └── CyclicDependencyError
    ├── ToolInvocationError       external process failures
    └── SizeReportError           unparseable size tool output
"""

from pathlib import Path
from typing import Optional, Sequence


class XBuildError(Exception):
    """Base class for all xbuild errors."""

    pass


class ConfigurationError(XBuildError):
    """Raised when platform/application selection or configuration is invalid."""

    pass


class ResolutionError(XBuildError):
    """Raised when a dependency, rule or module cannot be resolved."""

    pass


class UnresolvedModuleError(ResolutionError):
    """Raised when a module declaration matches no file on disk."""

    def __init__(self, module: str, source: Path, candidates: Sequence[Path]):
        self.module = module
        self.source = source
        self.candidates = list(candidates)
        tried = " and ".join(str(c) for c in self.candidates)
        super().__init__(f"Cannot resolve mod {module} in scope of {source}, tried {tried}")


class SourceNotFoundError(ResolutionError):
    """Raised when a source or prerequisite file does not exist."""

    def __init__(self, path: Path, included_from: Optional[object] = None):
        self.path = path
        self.included_from = included_from
        if included_from is None:
            message = f"Cannot find {path}"
        else:
            message = f"Cannot find {path} included from {included_from}"
        super().__init__(message)


class UnreadableSourceError(SourceNotFoundError):
    """Raised when a source exists on the path but cannot be read as text."""

    def __init__(self, path: Path, reason: object, included_from: Optional[object] = None):
        self.path = path
        self.included_from = included_from
        self.reason = reason
        where = f" included from {included_from}" if included_from is not None else ""
        ResolutionError.__init__(self, f"Cannot read {path}{where}: {reason}")


class MissingRuleError(ResolutionError):
    """Raised when a symbolic rule reference is not registered."""

    def __init__(self, name: str, referenced_by: Optional[str] = None):
        self.name = name
        self.referenced_by = referenced_by
        if referenced_by:
            message = f"Missing rule {name} (referenced by {referenced_by})"
        else:
            message = f"Missing rule {name}"
        super().__init__(message)


class DuplicateRuleError(ResolutionError):
    """Raised by a strict registry when a rule name is registered twice."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Duplicate rule name: {name}")


class CyclicDependencyError(ResolutionError):
    """Raised when build nodes depend on each other in a cycle."""

    def __init__(self, cycle: Sequence[object]):
        self.cycle = list(cycle)
        super().__init__(f"Cyclic dependency detected: {' -> '.join(str(c) for c in self.cycle)}")


class ToolInvocationError(XBuildError):
    """Raised when an external toolchain process fails."""

    def __init__(self, command: Sequence[str], returncode: Optional[int], stderr: str = "", target: Optional[str] = None):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        self.target = target
        tool = self.command[0] if self.command else "<empty command>"
        what = f" while building {target}" if target else ""
        if returncode is None:
            message = f"Failed to run {tool}{what}"
        else:
            message = f"{tool} exited with code {returncode}{what}"
        if stderr:
            message += f"\nstderr: {stderr.rstrip()}"
        super().__init__(message)


class SizeReportError(XBuildError):
    """Raised when the output of the size tool cannot be parsed."""

    pass
