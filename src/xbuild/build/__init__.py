"""
Build system components for xbuild.

This module provides the build system implementation including:
- Module declaration scanning and transitive dependency resolution
- Crate identity keys for library artifacts
- The rule registry and symbolic dependency references
- The incremental task graph and its builder
"""

from .dependency_resolver import DependencyResolver
from .source_scanner import SourceScanner
from .task_builder import TaskGraphBuilder
from .task_graph import TaskGraph

__all__ = [
    "DependencyResolver",
    "SourceScanner",
    "TaskGraph",
    "TaskGraphBuilder",
]
