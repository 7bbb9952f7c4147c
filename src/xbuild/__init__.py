"""
xbuild - dependency-aware build orchestration for embedded firmware.

Rules files declare compilation, link and post-processing steps on a
TaskGraphBuilder; the resulting task graph rebuilds only what is stale.
"""

__version__ = "0.1.0"

from .build.build_context import BuildContext, BuildSettings
from .build.rule_registry import SymbolicRef, ref
from .build.task_builder import TaskGraphBuilder

__all__ = [
    "__version__",
    "BuildContext",
    "BuildSettings",
    "SymbolicRef",
    "TaskGraphBuilder",
    "ref",
]
