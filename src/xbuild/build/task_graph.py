"""Incremental build task graph.

Nodes are keyed by the file they produce. Invoking a target walks its
prerequisites depth-first, brings every prerequisite node up to date first,
then decides whether the target itself is stale:

    STALE  output missing, older than a prerequisite, or a prerequisite
           node ran during this invocation
    CLEAN  otherwise, or after the node's action has run

Each node is evaluated at most once per invocation; a node that has run (or
was found clean) is never re-run in the same invocation. Prerequisites that
are not nodes must already exist on disk.

WHITE/GRAY/BLACK colouring detects cycles; node state transitions are
recorded on the node.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from ..errors import CyclicDependencyError, MissingRuleError, SourceNotFoundError
from ..output import log_node

logger = logging.getLogger(__name__)

Action = Callable[["TaskNode"], None]


class NodeState(Enum):
    """Staleness state of a task node within one invocation."""

    STALE = "stale"
    CLEAN = "clean"


def _mtime_ns(path: Path) -> Optional[int]:
    try:
        return path.stat().st_mtime_ns
    except (FileNotFoundError, NotADirectoryError):
        return None


class TaskNode:
    """A file-producing build step.

    Attributes:
        name: Rule name (or output path for anonymous nodes)
        output: Artifact path
        prerequisites: Files and node outputs this node depends on
        action: Callable that runs exactly one external tool
        tool: Short tool label for progress output
        state: STALE until evaluated clean or executed
        executed: Whether the action ran during this invocation
    """

    phony = False

    def __init__(
        self,
        name: str,
        output: Optional[Path],
        prerequisites: Iterable[Path] = (),
        action: Optional[Action] = None,
        tool: str = "",
    ):
        self.name = name
        self.output = Path(output) if output is not None else None
        self.prerequisites: tuple[Path, ...] = tuple(Path(p) for p in prerequisites)
        self.action = action
        self.tool = tool
        self.state = NodeState.STALE
        self.executed = False

    def timestamp(self) -> Optional[int]:
        """Modification time of the output in ns, or None if it does not exist."""
        if self.output is None:
            return None
        return _mtime_ns(self.output)

    def is_stale(self, prerequisite_times: List[Optional[int]], prerequisite_ran: bool) -> bool:
        """Decide staleness from prerequisite state.

        Args:
            prerequisite_times: mtimes of all prerequisites (None = no file)
            prerequisite_ran: Whether any prerequisite node ran this invocation
        """
        own = self.timestamp()
        if own is None or prerequisite_ran:
            return True
        return any(t is not None and t > own for t in prerequisite_times)

    def execute(self) -> None:
        """Run the action and mark the node clean."""
        if self.output is not None:
            self.output.parent.mkdir(parents=True, exist_ok=True)
        if self.action is not None:
            self.action(self)
        self.executed = True
        self.state = NodeState.CLEAN

    def reset(self) -> None:
        self.state = NodeState.STALE
        self.executed = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, output={self.output!s})"


class FingerprintNode(TaskNode):
    """Node whose staleness is driven by a recorded value, not by file content.

    The marker file holds the last value built (e.g. the application name).
    A different current value makes the node stale; running it rewrites the
    marker, which in turn makes every node depending on the marker stale.
    """

    def __init__(self, name: str, marker: Path, value: str):
        super().__init__(name, marker, (), self._store, tool="fingerprint")
        self.value = value

    def recorded_value(self) -> Optional[str]:
        try:
            return self.output.read_text(encoding="utf-8").strip()  # type: ignore[union-attr]
        except FileNotFoundError:
            return None

    def is_stale(self, prerequisite_times: List[Optional[int]], prerequisite_ran: bool) -> bool:
        return self.recorded_value() != self.value

    def _store(self, node: TaskNode) -> None:
        self.output.write_text(self.value, encoding="utf-8")  # type: ignore[union-attr]


class PhonyNode(TaskNode):
    """Node without an output file; always runs when invoked.

    With no action it acts as an alias: it counts as executed when any of
    its prerequisite nodes ran.
    """

    phony = True

    def __init__(self, name: str, prerequisites: Iterable[Path] = (), action: Optional[Action] = None, tool: str = ""):
        super().__init__(name, None, prerequisites, action, tool)

    def is_stale(self, prerequisite_times: List[Optional[int]], prerequisite_ran: bool) -> bool:
        return self.action is not None or prerequisite_ran


@dataclass
class BuildReport:
    """Outcome of one graph invocation."""

    targets: List[str]
    executed: List[TaskNode] = field(default_factory=list)
    up_to_date: List[TaskNode] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def executed_count(self) -> int:
        return len(self.executed)

    @property
    def up_to_date_count(self) -> int:
        return len(self.up_to_date)


class TaskGraph:
    """Owns task nodes and executes them in dependency order.

    Usage:
        graph = TaskGraph(root_dir)
        graph.add(TaskNode("app", Path("build/app.o"), [Path("app.rs")], action))
        report = graph.invoke("app")
    """

    WHITE, GRAY, BLACK = 0, 1, 2

    def __init__(self, root_dir: Optional[Path] = None):
        self.root_dir = Path(root_dir) if root_dir is not None else Path.cwd()
        self._by_output: Dict[str, TaskNode] = {}
        self._by_name: Dict[str, TaskNode] = {}
        self.default_target: Optional[str] = None
        self.required: List[str] = []

    def key(self, path: Union[str, Path]) -> str:
        """Normalized absolute key for a file path."""
        path = Path(path)
        if not path.is_absolute():
            path = self.root_dir / path
        return os.path.normpath(str(path))

    def add(self, node: TaskNode) -> TaskNode:
        """Register a node under its name and output path.

        Relative output and prerequisite paths are anchored at ``root_dir``.
        """
        node.prerequisites = tuple(Path(self.key(p)) for p in node.prerequisites)
        if node.output is not None:
            key = self.key(node.output)
            node.output = Path(key)
            previous = self._by_output.get(key)
            if previous is not None and previous.name != node.name:
                logger.warning(f"Output {node.output} of {node.name} replaces the node declared by {previous.name}")
            self._by_output[key] = node
        self._by_name[node.name] = node
        return node

    def node_for(self, target: Union[str, Path]) -> TaskNode:
        """Find a node by rule name or output path.

        Raises:
            MissingRuleError: If nothing matches
        """
        if isinstance(target, str) and target in self._by_name:
            return self._by_name[target]
        node = self._by_output.get(self.key(target))
        if node is None:
            raise MissingRuleError(str(target))
        return node

    def require(self, name: str) -> None:
        """Build node ``name`` before the requested targets on every invocation."""
        if name not in self.required:
            self.required.append(name)

    def node_for_output(self, path: Path) -> Optional[TaskNode]:
        return self._by_output.get(self.key(path))

    def nodes(self) -> List[TaskNode]:
        return list(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def invoke(self, *targets: Union[str, Path]) -> BuildReport:
        """Bring ``targets`` (or the default target) up to date.

        Raises:
            MissingRuleError: If a target is unknown
            SourceNotFoundError: If a non-node prerequisite does not exist
            CyclicDependencyError: If nodes depend on each other in a cycle
            ToolInvocationError: If an action fails; the build stops there
        """
        if not targets:
            if self.default_target is None:
                raise MissingRuleError("default")
            targets = (self.default_target,)

        start = time.time()
        report = BuildReport(targets=[str(t) for t in targets])
        colors: Dict[int, int] = {}
        for target in [*self.required, *targets]:
            self._visit(self.node_for(target), colors, [], report)
        report.elapsed = time.time() - start
        return report

    def reset(self) -> None:
        """Forget per-invocation state so the graph can be invoked again."""
        for node in self._by_name.values():
            node.reset()

    def _visit(self, node: TaskNode, colors: Dict[int, int], path: List[str], report: BuildReport) -> None:
        color = colors.get(id(node), self.WHITE)
        if color == self.BLACK or node.state is NodeState.CLEAN:
            return
        if color == self.GRAY:
            cycle_start = path.index(node.name)
            raise CyclicDependencyError(path[cycle_start:] + [node.name])

        colors[id(node)] = self.GRAY
        path.append(node.name)

        prerequisite_times: List[Optional[int]] = []
        prerequisite_ran = False
        for prerequisite in node.prerequisites:
            dep_node = self.node_for_output(prerequisite)
            if dep_node is not None and dep_node is not node:
                self._visit(dep_node, colors, path, report)
                prerequisite_ran = prerequisite_ran or dep_node.executed
                prerequisite_times.append(dep_node.timestamp())
                continue

            mtime = _mtime_ns(prerequisite)
            if mtime is None:
                raise SourceNotFoundError(prerequisite, node.name)
            prerequisite_times.append(mtime)

        if node.is_stale(prerequisite_times, prerequisite_ran):
            logger.debug(f"{node.name} is stale, running {node.tool or 'action'}")
            if node.action is not None:
                log_node(node.tool or "run", self._display(node))
            node.execute()
            report.executed.append(node)
        else:
            logger.debug(f"{node.name} is up to date")
            node.state = NodeState.CLEAN
            log_node(node.tool or "run", self._display(node), cached=True, verbose_only=True)
            report.up_to_date.append(node)

        path.pop()
        colors[id(node)] = self.BLACK

    def _display(self, node: TaskNode) -> str:
        if node.output is None:
            return node.name
        try:
            return str(node.output.relative_to(self.root_dir))
        except ValueError:
            return str(node.output)
