"""Permission policies and the tiered evaluator.

A policy lists the capabilities an actor must hold and, optionally,
allow/deny context blocks that restrict where and by whom a command may
be used. Policies nest: ``submodule_permissions`` maps a child command's
name to a policy of its own, to any depth.

Evaluation of a single policy:

1. Every required capability the actor lacks produces a reason.
2. With no allow or deny block configured, access is otherwise open.
3. Otherwise the four tiers are checked in priority order
   user > role > channel > category. The first tier whose allow block
   matches the request settles it: that tier's deny block and every
   lower tier are ignored. A tier that is not suppressed reports an
   allow block it fails to match and a deny block it does match.

Every reason is reported, not just the first, so a user can see all of
what stands between them and the command.

Key classes:
    Capability: Coarse permission tags.
    ContextBlock: Sets of user/role/channel/category identifiers.
    PermissionPolicy: One level of policy, possibly with nested levels.

Key functions:
    evaluate_policy: Reasons a single policy denies a request.
    policy_chain: Policies applicable along a resolved command path.
    check_permissions: Reasons the whole chain denies a request.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .context import RequestContext

if TYPE_CHECKING:
    from .tree import CommandNode

logger = structlog.get_logger("switchboard.permissions")


class Capability(str, Enum):
    """Management permissions a policy may require."""
    TIMEOUT = "timeout"
    KICK = "kick"
    BAN = "ban"
    MANAGE_ROLES = "manage_roles"
    ADMINISTRATOR = "administrator"


class Tier(str, Enum):
    """Context tiers, declared in priority order (highest first)."""
    USER = "user"
    ROLE = "role"
    CHANNEL = "channel"
    CATEGORY = "category"


class ContextBlock(BaseModel):
    """Identifier sets matched against a request.

    A field left as ``None`` is not configured and never matches or
    blocks anything. An empty list is configured and matches nothing.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    users: Optional[List[str]] = None
    roles: Optional[List[str]] = None
    channels: Optional[List[str]] = None
    categories: Optional[List[str]] = None

    @field_validator("users", "roles", "channels", "categories", mode="before")
    @classmethod
    def _ids_as_strings(cls, value):
        # YAML reads bare snowflakes as ints
        if value is None:
            return None
        if isinstance(value, (str, int)):
            value = [value]
        return [str(v) for v in value]

    @property
    def configured(self) -> bool:
        return any(self.entries(tier) is not None for tier in Tier)

    def entries(self, tier: Tier) -> Optional[List[str]]:
        return {
            Tier.USER: self.users,
            Tier.ROLE: self.roles,
            Tier.CHANNEL: self.channels,
            Tier.CATEGORY: self.categories,
        }[tier]

    def matches(self, tier: Tier, context: RequestContext) -> bool:
        """Whether the request hits this block's entries for ``tier``."""
        entries = self.entries(tier)
        if not entries:
            return False
        if tier is Tier.USER:
            return context.user_id in entries
        if tier is Tier.ROLE:
            return not context.role_ids.isdisjoint(entries)
        if tier is Tier.CHANNEL:
            return context.channel_id is not None and context.channel_id in entries
        return context.category_id is not None and context.category_id in entries


class PermissionPolicy(BaseModel):
    """Permission configuration for one command level.

    Accepts the camelCase keys used by older config files
    (``requiredPerms``, ``submodulePermissions``) as well as snake_case.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    required_capabilities: List[Capability] = Field(
        default_factory=list, alias="requiredPerms"
    )
    allowed: Optional[ContextBlock] = None
    denied: Optional[ContextBlock] = None
    submodule_permissions: Dict[str, "PermissionPolicy"] = Field(
        default_factory=dict, alias="submodulePermissions"
    )

    @field_validator("submodule_permissions", mode="after")
    @classmethod
    def _lowercase_submodule_keys(cls, value):
        return {name.lower(): policy for name, policy in value.items()}

    def for_child(self, name: str) -> Optional["PermissionPolicy"]:
        """Nested policy for a child command, if one is configured."""
        return self.submodule_permissions.get(name.lower())


def _missing_capability_reasons(
    policy: PermissionPolicy, context: RequestContext
) -> List[str]:
    return [
        f"missing capability: {capability.value}"
        for capability in policy.required_capabilities
        if not context.has_capability(capability.value)
    ]


def _context_reasons(policy: PermissionPolicy, context: RequestContext) -> List[str]:
    allowed = policy.allowed or ContextBlock()
    denied = policy.denied or ContextBlock()
    if not allowed.configured and not denied.configured:
        return []

    reasons: List[str] = []
    for tier in Tier:
        if allowed.matches(tier, context):
            # Highest matching allow wins; nothing below it counts
            break
        if allowed.entries(tier) is not None:
            reasons.append(f"not in allowed {tier.value} list")
        if denied.matches(tier, context):
            reasons.append(f"blocked by denied {tier.value} list")
    return reasons


def evaluate_policy(policy: PermissionPolicy, context: RequestContext) -> List[str]:
    """Return every reason ``policy`` denies the request.

    Capability reasons come first. An empty list means authorized.
    """
    return _missing_capability_reasons(policy, context) + _context_reasons(
        policy, context
    )


def policy_chain(path: Sequence["CommandNode"]) -> List[PermissionPolicy]:
    """Collect the policies applicable to a resolved command path.

    Walks from the root: each node's own policy, plus the nested
    ``submodule_permissions`` entry for each level below the root,
    followed as deep as the configuration goes.
    """
    chain: List[PermissionPolicy] = []
    if not path:
        return chain

    root = path[0]
    nested: Optional[PermissionPolicy] = root.permissions
    if nested is not None:
        chain.append(nested)

    for node in path[1:]:
        if node.permissions is not None:
            chain.append(node.permissions)
        nested = nested.for_child(node.name) if nested is not None else None
        if nested is not None:
            chain.append(nested)
    return chain


def check_permissions(
    path: Sequence["CommandNode"], context: RequestContext
) -> List[str]:
    """Evaluate every policy along ``path`` and concatenate the reasons."""
    reasons: List[str] = []
    for policy in policy_chain(path):
        reasons.extend(evaluate_policy(policy, context))

    if reasons:
        logger.info(
            "permission_denied",
            command=" ".join(node.name for node in path),
            user_id=context.user_id,
            reasons=reasons,
        )
    return reasons
