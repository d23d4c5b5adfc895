"""Explicit construction of the command tree.

The tree is owned by whoever calls ``build_tree`` and is handed to the
Dispatcher by reference. Nothing is registered at import time, so tests
can build as many isolated trees as they like.
"""

from typing import Iterable

import structlog

from .exceptions import RegistrationError
from .loader import ModuleFactory
from .tree import CommandTree, RootCommand

logger = structlog.get_logger("switchboard.modules")


def build_tree(config, factories: Iterable[ModuleFactory]) -> CommandTree:
    """Call every module factory and collect its roots into a new tree.

    A factory may return one RootCommand, a sequence of them, or None.
    Factories that raise, return something else, or produce a root whose
    name clashes with an existing one are logged and skipped; the rest
    of the tree is still built.
    """
    tree = CommandTree()
    default_timeout = getattr(config, "dependency_timeout", None)
    for factory in factories:
        try:
            produced = factory.setup(config)
        except Exception as e:
            logger.error(
                "module_setup_failed",
                module=factory.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            continue

        if produced is None:
            roots = []
        elif isinstance(produced, RootCommand):
            roots = [produced]
        elif isinstance(produced, (list, tuple)):
            roots = list(produced)
        else:
            logger.error(
                "module_setup_invalid_result",
                module=factory.name,
                result_type=type(produced).__name__,
            )
            continue

        for root in roots:
            try:
                tree.add_root(root)
            except RegistrationError as e:
                logger.error("module_root_rejected", module=factory.name, error=str(e))
                continue
            for dependency in root.dependencies:
                dependency.set_default_timeout(default_timeout)
            logger.info(
                "module_registered",
                module=factory.name,
                command=root.name,
                enabled=root.enabled,
                subcommands=sum(1 for _ in root.walk()) - 1,
            )

    return tree
