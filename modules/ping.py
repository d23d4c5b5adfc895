"""Liveness check."""

from switchboard.tree import RootCommand


def setup(config):
    ping = RootCommand("ping", "Check that the bot is listening", config=config)

    @ping.on_execute
    async def pong(args, ctx):
        return "pong"

    return ping
