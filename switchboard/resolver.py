"""Match a token sequence against the command tree."""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .tree import CommandNode, CommandTree


@dataclass(frozen=True)
class Resolution:
    """Result of resolving tokens against the tree.

    Attributes:
        node: Deepest node addressed, or None if the first token named
            no root.
        path: Nodes from the root down to ``node``.
        consumed: Tokens that matched, case preserved.
        args: Leftover tokens, treated as positional arguments.
    """

    node: Optional[CommandNode]
    path: List[CommandNode] = field(default_factory=list)
    consumed: List[str] = field(default_factory=list)
    args: List[str] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.node is not None

    @property
    def command_used(self) -> str:
        """The matched tokens as typed, e.g. ``Mod kick``."""
        return " ".join(self.consumed)


def resolve(tree: CommandTree, tokens: Sequence[str]) -> Resolution:
    """Walk the tree as far as the tokens allow.

    The first token is matched against root names, each following token
    against the current node's children, case-insensitively. Resolution
    stops at the first token that matches nothing, at a node with no
    children, or when tokens run out.
    """
    remaining = [token for token in tokens if token]
    if not remaining:
        return Resolution(node=None, args=[])

    node: Optional[CommandNode] = tree.get(remaining[0])
    if node is None:
        return Resolution(node=None, args=remaining)

    path = [node]
    consumed = [remaining.pop(0)]
    while remaining and node.has_children:
        child = node.find_child(remaining[0])
        if child is None:
            break
        node = child
        path.append(child)
        consumed.append(remaining.pop(0))

    return Resolution(node=node, path=path, consumed=consumed, args=remaining)
