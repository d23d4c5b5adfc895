"""Switchboard: a chat-bot command framework.

A hierarchical command tree with dependency-gated initialization,
case-insensitive token resolution, and tiered allow/deny permissions.
"""

__version__ = "0.1.0"

from .arguments import CommandArguments, OptionSpec, OptionType
from .context import RequestContext
from .dependency import Dependency, Failed, Resolved, UNATTEMPTED
from .dispatcher import Dispatcher
from .permissions import Capability, ContextBlock, PermissionPolicy
from .responses import Response, ResponseKind
from .tree import CommandTree, RootCommand, SubCommand, register_child

__all__ = [
    "Capability",
    "CommandArguments",
    "CommandTree",
    "ContextBlock",
    "Dependency",
    "Dispatcher",
    "Failed",
    "OptionSpec",
    "OptionType",
    "PermissionPolicy",
    "RequestContext",
    "Resolved",
    "Response",
    "ResponseKind",
    "RootCommand",
    "SubCommand",
    "UNATTEMPTED",
    "register_child",
]
