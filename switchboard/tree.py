"""Command nodes and the command tree.

Every command is a node. Root nodes are bound to a named section of the
configuration; child nodes hang off a root (or off another child) and
share that root's configuration and dependencies. A node with children
is a group: typing it alone shows help, it never runs its own executor.

The tree is assembled once, before dispatch starts, through
``register_child`` and ``CommandTree.add_root``. Both enforce the
structural rules: names are valid and unique among siblings, a node has
at most one parent, and there are no cycles.

Key classes:
    CommandNode: Behaviour shared by every node.
    RootCommand: Top-level node bound to a module config section.
    SubCommand: Nested node inheriting its root's config and dependencies.
    CommandTree: Ordered forest of root commands.

Key functions:
    register_child: The only way to attach a node to a parent.
"""

import re
from typing import (
    TYPE_CHECKING, Awaitable, Callable, Dict, Iterator, List, Optional,
    Sequence, Union,
)

import structlog

from .arguments import CommandArguments, OptionSpec
from .context import RequestContext
from .dependency import Dependency
from .exceptions import ConfigurationError, ConfigurationMissingError, RegistrationError
from .permissions import PermissionPolicy

if TYPE_CHECKING:
    from .config import ConfigProvider, ModuleConfig
    from .responses import Response

logger = structlog.get_logger("switchboard.core")

Executor = Callable[
    [CommandArguments, RequestContext], Awaitable[Union["Response", str, None]]
]
Initializer = Callable[[], Awaitable[None]]

COMMAND_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")


async def _no_op_executor(args: CommandArguments, ctx: RequestContext) -> None:
    return None


def _validate_name(name: str) -> str:
    lowered = name.strip().lower()
    if not COMMAND_NAME_PATTERN.match(lowered):
        raise RegistrationError(f"Invalid command name {name!r}", node=name)
    return lowered


class CommandNode:
    """Behaviour shared by root and child commands.

    Args:
        name: Case-insensitive name used to invoke the command.
        description: One-line help text.
        executor: Coroutine run when the command is invoked. Ignored for
            nodes that have children.
        options: Typed options parsed from leftover tokens.
        aliases: Alternative names, matched like ``name``.
        permissions: Policy checked in addition to the config's.
    """

    def __init__(
        self,
        name: str,
        description: str = "",
        executor: Optional[Executor] = None,
        *,
        options: Sequence[OptionSpec] = (),
        aliases: Sequence[str] = (),
        permissions: Optional[PermissionPolicy] = None,
    ):
        self.name = _validate_name(name)
        self.description = description
        self.executor: Executor = executor or _no_op_executor
        self.options: List[OptionSpec] = list(options)
        self.aliases: List[str] = [_validate_name(alias) for alias in aliases]
        self.permissions = permissions
        self.children: List["SubCommand"] = []
        self.dependencies: List[Dependency] = []
        self.config: Optional["ModuleConfig"] = None
        self.parent: Optional["CommandNode"] = None
        self.root_name: str = self.name
        self.initialized = False
        self.enabled = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.qualified_name!r})"

    @property
    def is_root(self) -> bool:
        return False

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    @property
    def names(self) -> List[str]:
        """Name followed by aliases."""
        return [self.name, *self.aliases]

    @property
    def qualified_name(self) -> str:
        """Space-separated path from the root, e.g. ``mod kick``."""
        parts = []
        node: Optional[CommandNode] = self
        while node is not None:
            parts.append(node.name)
            node = node.parent
        return " ".join(reversed(parts))

    @property
    def root(self) -> "CommandNode":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def matches(self, token: str) -> bool:
        """Whether a (lowercased) token invokes this node."""
        return token in self.names

    def find_child(self, token: str) -> Optional["SubCommand"]:
        token = token.lower()
        for child in self.children:
            if child.matches(token):
                return child
        return None

    def on_execute(self, executor: Executor) -> Executor:
        """Set the executor. Usable as a decorator."""
        self.executor = executor
        return executor

    def register(self, child: "SubCommand") -> "SubCommand":
        """Attach ``child`` under this node. See ``register_child``."""
        register_child(self, child)
        return child

    def walk(self) -> Iterator["CommandNode"]:
        """Yield this node and every descendant, depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()


class RootCommand(CommandNode):
    """Top-level command bound to a module config section.

    The section named after the command is looked up at construction. If
    it is missing the root is permanently disabled; otherwise ``enabled``
    and ``permissions`` come from the section. A policy from the config
    replaces one passed in code.

    Args:
        name: Root name; also the config section name.
        description: One-line help text.
        executor: Coroutine run when the root has no children.
        config: Provider the section is looked up in.
        dependencies: Resources resolved before initialization and
            checked before every execution under this root.
        initializer: Coroutine run once at startup after every
            dependency resolved.
    """

    def __init__(
        self,
        name: str,
        description: str = "",
        executor: Optional[Executor] = None,
        *,
        config: "ConfigProvider",
        dependencies: Sequence[Dependency] = (),
        initializer: Optional[Initializer] = None,
        **kwargs,
    ):
        super().__init__(name, description, executor, **kwargs)
        self.dependencies = list(dependencies)
        self.initializer = initializer

        try:
            self.config = config.get_module_config(self.name)
        except ConfigurationMissingError:
            logger.warning(
                "module_config_missing",
                module=self.name,
                msg="No config section found, this module will be disabled",
            )
            return
        except ConfigurationError as e:
            logger.error("module_config_invalid", module=self.name, error=str(e))
            return

        self.enabled = self.config.enabled
        if self.config.permissions is not None:
            self.permissions = self.config.permissions

    @property
    def is_root(self) -> bool:
        return True

    def on_initialize(self, initializer: Initializer) -> Initializer:
        """Set the initializer. Usable as a decorator."""
        self.initializer = initializer
        return initializer


class SubCommand(CommandNode):
    """Nested command. Config, dependencies and root name are inherited
    from the root when the node is registered."""


def _inherit(node: CommandNode, parent: CommandNode) -> None:
    node.config = parent.config
    node.dependencies = parent.dependencies
    node.root_name = parent.root_name
    for grandchild in node.children:
        _inherit(grandchild, node)


def register_child(parent: CommandNode, child: CommandNode) -> None:
    """Attach ``child`` to ``parent``.

    The child (and its whole subtree) takes the parent's config
    reference, dependency list and root name, replacing its own.

    Raises:
        RegistrationError: If ``child`` is a root, already has a parent,
            is ``parent`` or one of its ancestors, or clashes with a
            sibling's name or alias.
    """
    if child.is_root:
        raise RegistrationError(
            "Root commands cannot be registered as children",
            node=child.name, parent=parent.name,
        )
    if child.parent is not None:
        raise RegistrationError(
            f"{child.name!r} is already registered under {child.parent.qualified_name!r}",
            node=child.name, parent=parent.name,
        )
    ancestor: Optional[CommandNode] = parent
    while ancestor is not None:
        if ancestor is child:
            raise RegistrationError(
                "Registering this node would create a cycle",
                node=child.name, parent=parent.name,
            )
        ancestor = ancestor.parent

    taken = {name for sibling in parent.children for name in sibling.names}
    clashes = taken.intersection(child.names)
    if clashes:
        raise RegistrationError(
            f"Duplicate command name under {parent.qualified_name!r}: {sorted(clashes)}",
            node=child.name, parent=parent.name,
        )

    child.parent = parent
    _inherit(child, parent)
    parent.children.append(child)
    logger.debug("command_registered", command=child.qualified_name)


class CommandTree:
    """Ordered forest of root commands. Built once, read during dispatch."""

    def __init__(self, roots: Sequence[RootCommand] = ()):
        self.roots: List[RootCommand] = []
        for root in roots:
            self.add_root(root)

    def __iter__(self) -> Iterator[RootCommand]:
        return iter(self.roots)

    def __len__(self) -> int:
        return len(self.roots)

    def add_root(self, root: RootCommand) -> RootCommand:
        """Add a root command.

        Raises:
            RegistrationError: If ``root`` is not a RootCommand or its
                name or an alias is already taken by another root.
        """
        if not isinstance(root, RootCommand):
            raise RegistrationError(
                "Only root commands can be added to the tree", node=root.name
            )
        taken = {name for existing in self.roots for name in existing.names}
        clashes = taken.intersection(root.names)
        if clashes:
            raise RegistrationError(
                f"Duplicate root command name: {sorted(clashes)}", node=root.name
            )
        self.roots.append(root)
        return root

    def get(self, token: str) -> Optional[RootCommand]:
        """Find a root by name or alias, case-insensitively."""
        token = token.lower()
        for root in self.roots:
            if root.matches(token):
                return root
        return None

    def walk(self) -> Iterator[CommandNode]:
        """Yield every node in the tree, depth-first."""
        for root in self.roots:
            yield from root.walk()

    def as_dict(self) -> Dict[str, dict]:
        """Nested name -> children mapping, for diagnostics."""
        def describe(node: CommandNode) -> dict:
            return {child.name: describe(child) for child in node.children}
        return {root.name: describe(root) for root in self.roots}
