"""Transport-facing front end of the command engine.

CommandBot turns raw chat messages into dispatcher requests: it drops
messages from bots and messages without a command prefix, splits the
rest into tokens, and forwards whatever the dispatcher answers to the
transport's response sink.

Key classes:
    IncomingMessage: A chat message plus the sender's context.
    ResponseSink: What a transport must provide to deliver replies.
    CommandBot: Filters, tokenizes, dispatches and replies.
"""

import shlex
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

import structlog

from .context import RequestContext
from .dispatcher import Dispatcher
from .help import help_for_tree
from .responses import Response

logger = structlog.get_logger("switchboard.dispatch")

HELP_COMMAND = "help"


@dataclass
class IncomingMessage:
    """A message as received from a transport.

    Attributes:
        content: Raw message text.
        context: Sender identity and location.
        reply_to: Opaque transport handle the sink uses to reply.
    """
    content: str
    context: RequestContext
    reply_to: object = None


class ResponseSink(Protocol):
    async def send(self, message: IncomingMessage, response: Response) -> None:
        ...


def tokenize(text: str) -> List[str]:
    """Split command text into tokens, honouring quotes.

    Unbalanced quotes fall back to plain whitespace splitting.
    """
    try:
        return shlex.split(text)
    except ValueError:
        return text.split()


class CommandBot:
    """Routes prefixed chat messages through a Dispatcher.

    Args:
        dispatcher: Engine that answers requests.
        sink: Delivers responses back to the transport.
        prefixes: Leading strings that mark a message as a command.
        testing_user_id: Bot account whose messages are processed anyway.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        sink: ResponseSink,
        prefixes: Sequence[str] = ("!",),
        testing_user_id: Optional[str] = None,
    ):
        self.dispatcher = dispatcher
        self.sink = sink
        self.prefixes = list(prefixes)
        self.testing_user_id = testing_user_id

    @classmethod
    def from_config(cls, dispatcher: Dispatcher, sink: ResponseSink, config) -> "CommandBot":
        return cls(
            dispatcher,
            sink,
            prefixes=config.prefixes,
            testing_user_id=config.testing_user_id,
        )

    def _strip_prefix(self, content: str) -> Optional[str]:
        for prefix in self.prefixes:
            if content.startswith(prefix):
                return content[len(prefix):]
        return None

    def _should_ignore(self, message: IncomingMessage) -> bool:
        ctx = message.context
        return ctx.is_bot and ctx.user_id != self.testing_user_id

    async def process_message(self, message: IncomingMessage) -> Optional[Response]:
        """Handle one incoming message end to end.

        Returns:
            The response that was sent, or None if nothing was sent.
        """
        if self._should_ignore(message):
            return None

        command_text = self._strip_prefix(message.content.strip())
        if command_text is None:
            return None

        tokens = tokenize(command_text)
        if not tokens:
            return None

        logger.debug(
            "command_received",
            user_id=message.context.user_id,
            channel_id=message.context.channel_id,
            command=tokens[0].lower(),
        )

        if tokens[0].lower() == HELP_COMMAND and self.dispatcher.tree.get(HELP_COMMAND) is None:
            response: Optional[Response] = help_for_tree(self.dispatcher.tree)
        else:
            response = await self.dispatcher.handle(tokens, message.context)

        if response is None:
            return None

        try:
            await self.sink.send(message, response)
        except Exception as e:
            logger.error(
                "response_send_failed",
                user_id=message.context.user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        return response
