"""Normalizer and loader collaborators.

A collaborator is anything exposing ``get_options(options)`` and ``run(config)``:
a module with those two functions or a class whose instances have them. ``run``
may be a plain function or a coroutine function.
"""

import importlib
import inspect
import logging
from typing import Any, Optional, Protocol, runtime_checkable

from ..core.errors import CollaboratorError

logger = logging.getLogger(__name__)


@runtime_checkable
class StageCollaborator(Protocol):
    def get_options(self, options) -> Any: ...

    def run(self, config: Any) -> Any: ...


def _import_target(path: str) -> Any:
    try:
        return importlib.import_module(path)
    except ModuleNotFoundError as e:
        # Only fall through when the path itself is not a module
        if e.name != path or "." not in path:
            raise

    module_path, attr = path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise ImportError(f"{module_path} has no attribute {attr}") from e


def load_collaborator(path: Optional[str], role: str = "collaborator") -> StageCollaborator:
    """Import a collaborator from a module path or a fully qualified class path.

    Classes are instantiated without arguments.

    Raises:
        CollaboratorError: If the path is unset, cannot be imported, or does not
            provide ``get_options`` and ``run``.
    """
    if not path:
        raise CollaboratorError(f"No {role} configured")

    try:
        target = _import_target(path)
    except ImportError as e:
        raise CollaboratorError(f"Failed to import {role} {path}: {e}") from e

    if inspect.isclass(target):
        target = target()

    if not isinstance(target, StageCollaborator):
        raise CollaboratorError(f"{role} {path} must provide get_options() and run()")

    logger.debug(f"Loaded {role} {path}")
    return target


async def run_collaborator(collaborator: StageCollaborator, options, role: str) -> Any:
    """Build the collaborator's configuration from ``options`` and run it.

    Raises:
        CollaboratorError: If either phase fails.
    """
    try:
        config = collaborator.get_options(options)
        logger.debug(f"Running {role} with options: {config}")
        result = collaborator.run(config)
        if inspect.isawaitable(result):
            result = await result
    except CollaboratorError:
        raise
    except Exception as e:
        raise CollaboratorError(f"{role} failed: {e}") from e

    return result
