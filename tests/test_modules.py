"""End-to-end tests against the bundled feature modules."""

from pathlib import Path

import pytest

from switchboard.bootstrap import build_tree
from switchboard.config import Config
from switchboard.context import RequestContext
from switchboard.dispatcher import Dispatcher
from switchboard.loader import ModuleLoader
from switchboard.responses import ResponseKind

MODULES_DIR = Path(__file__).parent.parent / "modules"


@pytest.fixture
def dispatcher_for():
    async def build(**modules):
        config = Config(settings={"modules": modules})
        factories = ModuleLoader(MODULES_DIR, allowlist=["ping", "notes"]).discover()
        dispatcher = Dispatcher(build_tree(config, factories))
        await dispatcher.initialize_all()
        return dispatcher
    return build


def _ctx(channel="general", roles=(), caps=()):
    return RequestContext.build(user_id="1", role_ids=roles, channel_id=channel, capabilities=caps)


@pytest.mark.asyncio
async def test_ping(dispatcher_for):
    dispatcher = await dispatcher_for(ping={"enabled": True})
    response = await dispatcher.handle(["ping"], _ctx())
    assert response.body == "pong"


@pytest.mark.asyncio
async def test_notes_roundtrip(dispatcher_for, tmp_path):
    storage = tmp_path / "notes.json"
    dispatcher = await dispatcher_for(notes={"enabled": True, "storage_path": str(storage)})

    saved = await dispatcher.handle(["notes", "add", "buy", "milk"], _ctx())
    listed = await dispatcher.handle(["notes", "ls"], _ctx())

    assert saved.body == "Saved note #1"
    assert listed.fields == [("#1", "buy milk")]
    assert storage.exists()


@pytest.mark.asyncio
async def test_notes_clear_policy(dispatcher_for, tmp_path):
    dispatcher = await dispatcher_for(notes={
        "enabled": True,
        "storage_path": str(tmp_path / "notes.json"),
        "permissions": {
            "submodulePermissions": {
                "clear": {"requiredPerms": ["manage_roles"], "allowed": {"roles": ["staff"]}},
            },
        },
    })

    denied = await dispatcher.handle(["notes", "clear"], _ctx())
    allowed = await dispatcher.handle(["notes", "clear"], _ctx(roles=["staff"], caps=["manage_roles"]))

    assert denied.kind is ResponseKind.DENIED
    assert denied.reasons == ["missing capability: manage_roles", "not in allowed role list"]
    assert allowed.body == "Removed 0 note(s)"


@pytest.mark.asyncio
async def test_notes_unavailable_when_storage_unreadable(dispatcher_for, tmp_path):
    storage = tmp_path / "notes.json"
    storage.write_text("{not json")
    dispatcher = await dispatcher_for(notes={"enabled": True, "storage_path": str(storage)})

    response = await dispatcher.handle(["notes", "list"], _ctx())

    assert response.kind is ResponseKind.UNAVAILABLE
    assert response.body == "dependency unavailable: notes file"
