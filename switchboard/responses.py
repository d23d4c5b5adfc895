"""Response payloads produced by the dispatcher.

Responses are transport-neutral. A chat binding turns them into embeds;
text-only transports call ``render()``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

# Embed colors
COLOR_INFO = 0x2E8EEA
COLOR_ERROR = 0xCC0000
COLOR_WARNING = 0xE0A800


class ResponseKind(str, Enum):
    TEXT = "text"
    EMBED = "embed"
    HELP = "help"
    DENIED = "denied"
    UNAVAILABLE = "unavailable"
    USAGE = "usage"
    ERROR = "error"


@dataclass
class Response:
    """A reply to a command.

    Attributes:
        kind: What produced the response.
        body: Main text.
        title: Optional heading.
        reasons: Individual denial reasons (DENIED only).
        fields: (name, value) pairs, as in an embed.
        color: Embed color.
    """

    kind: ResponseKind
    body: str = ""
    title: Optional[str] = None
    reasons: List[str] = field(default_factory=list)
    fields: List[Tuple[str, str]] = field(default_factory=list)
    color: int = COLOR_INFO

    @property
    def is_error(self) -> bool:
        return self.kind in (
            ResponseKind.DENIED,
            ResponseKind.UNAVAILABLE,
            ResponseKind.USAGE,
            ResponseKind.ERROR,
        )

    @classmethod
    def text(cls, body: str) -> "Response":
        return cls(ResponseKind.TEXT, body=body)

    @classmethod
    def denied(cls, reasons: List[str]) -> "Response":
        return cls(
            ResponseKind.DENIED,
            title="You can't run this command",
            body="\n".join(f"- {reason}" for reason in reasons),
            reasons=list(reasons),
            color=COLOR_ERROR,
        )

    @classmethod
    def unavailable(cls, dependency: str) -> "Response":
        return cls(
            ResponseKind.UNAVAILABLE,
            body=f"dependency unavailable: {dependency}",
            color=COLOR_ERROR,
        )

    @classmethod
    def usage(cls, message: str, usage: str) -> "Response":
        return cls(
            ResponseKind.USAGE,
            title="Invalid command usage",
            body=f"{message}\nUsage: {usage}",
            color=COLOR_WARNING,
        )

    @classmethod
    def error(cls, incident_id: str) -> "Response":
        return cls(
            ResponseKind.ERROR,
            title="Command failed",
            body=f"Something went wrong running that command. Incident: {incident_id}",
            color=COLOR_ERROR,
        )

    def render(self) -> str:
        """Plain-text rendering for transports without embeds."""
        lines = []
        if self.title:
            lines.append(f"**{self.title}**")
        if self.body:
            lines.append(self.body)
        for name, value in self.fields:
            lines.append(f"{name}: {value}")
        return "\n".join(lines)
