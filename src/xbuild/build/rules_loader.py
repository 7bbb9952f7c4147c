"""Rules-file loading.

A rules file is plain Python defining ``rules(builder)``. It is imported
under a private module name and called once with the TaskGraphBuilder, so
every rule is registered before the graph runs.
"""

import importlib.util
import logging
from pathlib import Path

from ..errors import ConfigurationError
from .task_builder import TaskGraphBuilder

logger = logging.getLogger(__name__)

DEFAULT_RULES_FILE = "xbuild_rules.py"
RULES_FUNCTION = "rules"


def load_rules(path: Path, builder: TaskGraphBuilder) -> int:
    """Evaluate the rules file at ``path`` against ``builder``.

    Args:
        path: Rules file
        builder: Builder the rules are declared on

    Returns:
        Number of rules registered

    Raises:
        ConfigurationError: If the file is missing or defines no rules()
        XBuildError: Whatever the rules raise while declaring (resolution
            errors surface here, before anything is built)
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Rules file not found: {path}")

    spec = importlib.util.spec_from_file_location(f"xbuild_rules_{abs(hash(str(path)))}", path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot import rules file {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    declare = getattr(module, RULES_FUNCTION, None)
    if not callable(declare):
        raise ConfigurationError(f"Rules file {path} does not define {RULES_FUNCTION}(builder)")

    declare(builder)
    count = len(builder.registry)
    logger.info(f"Loaded {count} rule(s) from {path}")
    return count
