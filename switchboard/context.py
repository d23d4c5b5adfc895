"""Per-request identity and location of the actor issuing a command."""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional


@dataclass(frozen=True)
class RequestContext:
    """Who sent a command and where.

    Built by the transport for every incoming request and consumed by the
    permission evaluator and by command executors.

    Attributes:
        user_id: Identifier of the actor.
        role_ids: Roles the actor holds.
        channel_id: Channel the request arrived in.
        category_id: Category that channel belongs to, if any.
        capabilities: Coarse permission tags the actor holds
            (``ban``, ``kick``, ...).
        is_bot: Whether the actor is an automated account.
    """

    user_id: str
    role_ids: FrozenSet[str] = field(default_factory=frozenset)
    channel_id: Optional[str] = None
    category_id: Optional[str] = None
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    is_bot: bool = False

    @classmethod
    def build(
        cls,
        user_id,
        role_ids: Iterable = (),
        channel_id=None,
        category_id=None,
        capabilities: Iterable[str] = (),
        is_bot: bool = False,
    ) -> "RequestContext":
        """Create a context, normalizing identifiers to strings."""
        return cls(
            user_id=str(user_id),
            role_ids=frozenset(str(r) for r in role_ids),
            channel_id=None if channel_id is None else str(channel_id),
            category_id=None if category_id is None else str(category_id),
            capabilities=frozenset(str(c).lower() for c in capabilities),
            is_bot=is_bot,
        )

    def has_capability(self, capability: str) -> bool:
        # administrator implies every other capability
        return capability in self.capabilities or "administrator" in self.capabilities
