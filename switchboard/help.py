"""Help output for command groups."""

from typing import List, Tuple

from .arguments import usage_line
from .responses import COLOR_INFO, Response, ResponseKind
from .tree import CommandNode, CommandTree


def _subcommand_count(node: CommandNode) -> str:
    count = len(node.children)
    return f"{count} subcommand" if count == 1 else f"{count} subcommands"


def help_for_node(node: CommandNode, command_used: str = "") -> Response:
    """List a group's children, telling the user the group alone is not runnable.

    Args:
        node: A node with children.
        command_used: The tokens the user typed to reach ``node``, so the
            listed commands read as full invocations.
    """
    prefix = command_used or node.qualified_name
    fields: List[Tuple[str, str]] = []
    for child in node.children:
        invocation = usage_line(f"{prefix} {child.name}", child.options)
        fields.append(
            (f"`{invocation}`", f"{child.description} ({_subcommand_count(child)})")
        )
    return Response(
        ResponseKind.HELP,
        title="Invalid command usage. Subcommands for current command:",
        fields=fields,
        color=COLOR_INFO,
    )


def help_for_tree(tree: CommandTree) -> Response:
    """Overview of every enabled root command."""
    fields = [
        (f"`{root.name}`", root.description or "-")
        for root in tree
        if root.enabled
    ]
    return Response(
        ResponseKind.HELP,
        title="Available commands",
        fields=fields,
        color=COLOR_INFO,
    )
