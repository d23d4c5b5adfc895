"""Tests for permission policies and the tiered evaluator."""

import pytest
from pydantic import ValidationError

from switchboard.config import Config
from switchboard.context import RequestContext
from switchboard.permissions import (
    Capability,
    ContextBlock,
    PermissionPolicy,
    check_permissions,
    evaluate_policy,
    policy_chain,
)
from switchboard.tree import RootCommand, SubCommand


def ctx(user="u1", roles=(), channel="c1", category=None, caps=()):
    return RequestContext.build(
        user_id=user,
        role_ids=roles,
        channel_id=channel,
        category_id=category,
        capabilities=caps,
    )


def policy(**data):
    return PermissionPolicy.model_validate(data)


class TestCapabilities:

    def test_missing_capabilities_listed_in_order(self):
        p = policy(requiredPerms=["kick", "ban"])
        assert evaluate_policy(p, ctx()) == [
            "missing capability: kick",
            "missing capability: ban",
        ]

    def test_held_capability_passes(self):
        p = policy(requiredPerms=["ban"])
        assert evaluate_policy(p, ctx(caps=["BAN"])) == []

    def test_administrator_implies_all(self):
        p = policy(requiredPerms=["ban", "manage_roles"])
        assert evaluate_policy(p, ctx(caps=["administrator"])) == []

    def test_unknown_capability_rejected(self):
        with pytest.raises(ValidationError):
            policy(requiredPerms=["fly"])


class TestContextTiers:

    def test_open_policy(self):
        assert evaluate_policy(PermissionPolicy(), ctx()) == []

    def test_not_in_allowed_channel(self):
        p = policy(allowed={"channels": ["c9"]})
        assert evaluate_policy(p, ctx(channel="c1")) == ["not in allowed channel list"]

    def test_denied_role(self):
        p = policy(denied={"roles": ["muted"]})
        assert evaluate_policy(p, ctx(roles=["muted"])) == ["blocked by denied role list"]

    def test_user_allow_beats_role_deny(self):
        p = policy(allowed={"users": ["u1"]}, denied={"roles": ["muted"]})
        assert evaluate_policy(p, ctx(roles=["muted"])) == []

    def test_user_allow_overrides_own_tier_deny(self):
        p = policy(allowed={"users": ["u1"]}, denied={"users": ["u1"]})
        assert evaluate_policy(p, ctx()) == []

    def test_role_allow_ignores_channel_and_category(self):
        p = policy(
            allowed={"roles": ["staff"], "channels": ["c9"]},
            denied={"channels": ["c1"], "categories": ["k1"]},
        )
        assert evaluate_policy(p, ctx(roles=["staff"], category="k1")) == []

    def test_channel_allow_suppresses_category_deny(self):
        p = policy(allowed={"channels": ["general"]}, denied={"categories": ["archive"]})
        assert evaluate_policy(p, ctx(channel="general", category="archive")) == []
        assert evaluate_policy(p, ctx(channel="random", category="archive")) == [
            "not in allowed channel list",
            "blocked by denied category list",
        ]

    def test_unmatched_higher_allow_reported_before_lower_match(self):
        p = policy(allowed={"users": ["someone-else"], "channels": ["c1"]})
        assert evaluate_policy(p, ctx()) == ["not in allowed user list"]

    def test_every_unsuppressed_reason_reported(self):
        p = policy(
            allowed={"roles": ["staff"]},
            denied={"channels": ["c1"], "categories": ["k1"]},
        )
        assert evaluate_policy(p, ctx(category="k1")) == [
            "not in allowed role list",
            "blocked by denied channel list",
            "blocked by denied category list",
        ]

    def test_empty_allow_list_matches_nothing(self):
        p = policy(allowed={"users": []})
        assert evaluate_policy(p, ctx()) == ["not in allowed user list"]

    def test_adding_user_to_allow_never_adds_reasons(self):
        base = {"allowed": {"roles": ["staff"]}, "denied": {"channels": ["c1"]}}
        before = evaluate_policy(policy(**base), ctx())
        widened = {
            "allowed": {"roles": ["staff"], "users": ["u1"]},
            "denied": {"channels": ["c1"]},
        }
        after = evaluate_policy(policy(**widened), ctx())
        assert set(after) <= set(before)
        assert after == []

    def test_capability_reasons_precede_context_reasons(self):
        p = policy(requiredPerms=["kick"], denied={"users": ["u1"]})
        assert evaluate_policy(p, ctx()) == [
            "missing capability: kick",
            "blocked by denied user list",
        ]

    def test_numeric_ids_normalized(self):
        block = ContextBlock.model_validate({"users": [1234], "channels": 55})
        assert block.users == ["1234"]
        assert block.channels == ["55"]
        p = PermissionPolicy(allowed=block)
        assert evaluate_policy(p, ctx(user=1234, channel=55)) == []

    def test_category_missing_from_context_never_matches(self):
        p = policy(denied={"categories": ["k1"]})
        assert evaluate_policy(p, ctx(category=None)) == []


class TestPolicyChain:

    def _tree(self, permissions):
        config = Config(settings={"modules": {"mod": {"enabled": True, "permissions": permissions}}})
        root = RootCommand("mod", config=config)
        role = root.register(SubCommand("role"))
        add = role.register(SubCommand("add"))
        return root, role, add

    def test_nested_submodule_policies(self):
        root, role, add = self._tree({
            "requiredPerms": ["timeout"],
            "submodulePermissions": {
                "Role": {
                    "requiredPerms": ["manage_roles"],
                    "submodulePermissions": {"add": {"denied": {"users": ["u1"]}}},
                },
            },
        })
        chain = policy_chain([root, role, add])
        assert len(chain) == 3

        assert check_permissions([root, role, add], ctx()) == [
            "missing capability: timeout",
            "missing capability: manage_roles",
            "blocked by denied user list",
        ]

    def test_chain_stops_where_nesting_ends(self):
        root, role, add = self._tree({"submodulePermissions": {"role": {"requiredPerms": ["ban"]}}})
        assert len(policy_chain([root, role, add])) == 2
        assert check_permissions([root, role, add], ctx(caps=["ban"])) == []

    def test_node_declared_policy_included(self):
        root, role, add = self._tree({})
        add.permissions = PermissionPolicy(required_capabilities=[Capability.KICK])
        assert check_permissions([root, role, add], ctx()) == ["missing capability: kick"]

    def test_empty_path(self):
        assert policy_chain([]) == []
        assert check_permissions([], ctx()) == []

    def test_snake_case_keys_accepted(self):
        p = policy(
            required_capabilities=["ban"],
            submodule_permissions={"Kick": {"requiredPerms": ["kick"]}},
        )
        assert p.for_child("kick").required_capabilities == [Capability.KICK]
        assert p.for_child("missing") is None
