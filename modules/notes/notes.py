"""Per-channel notes kept in a JSON file.

The notes file is a dependency: if it cannot be opened at startup the
whole ``notes`` command reports it as unavailable instead of failing
each subcommand separately.
"""

import json
from pathlib import Path

from switchboard.arguments import OptionSpec, OptionType
from switchboard.dependency import Dependency
from switchboard.responses import Response, ResponseKind
from switchboard.tree import RootCommand, SubCommand


class NoteStore:
    def __init__(self, path: Path):
        self.path = path
        self.notes = json.loads(path.read_text()) if path.exists() else {}

    def save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self.notes, indent=2))


def _storage_path(root: RootCommand) -> Path:
    configured = root.config.get("storage_path") if root.config is not None else None
    return Path(configured or "notes.json").expanduser()


def setup(config):
    store = Dependency("notes file", lambda: NoteStore(_storage_path(notes)))

    notes = RootCommand(
        "notes", "Channel notes", config=config, dependencies=[store]
    )

    @notes.on_initialize
    async def ensure_writable():
        store.fetch_value().save()

    async def add(args, ctx):
        channel_notes = store.fetch_value().notes.setdefault(ctx.channel_id or "-", [])
        channel_notes.append(args["text"])
        store.fetch_value().save()
        return f"Saved note #{len(channel_notes)}"

    async def show(args, ctx):
        channel_notes = store.fetch_value().notes.get(ctx.channel_id or "-", [])
        fields = [(f"#{i}", text) for i, text in enumerate(channel_notes, 1)]
        return Response(
            ResponseKind.EMBED,
            title="Notes",
            body="" if fields else "No notes yet",
            fields=fields,
        )

    async def clear(args, ctx):
        removed = store.fetch_value().notes.pop(ctx.channel_id or "-", [])
        store.fetch_value().save()
        return f"Removed {len(removed)} note(s)"

    notes.register(SubCommand(
        "add", "Save a note", add,
        options=[
            OptionSpec(name="text", description="Note text", type=OptionType.STRING, required=True),
        ],
    ))
    notes.register(SubCommand("list", "Show this channel's notes", show, aliases=["ls"]))
    notes.register(SubCommand("clear", "Delete this channel's notes", clear))
    return notes
