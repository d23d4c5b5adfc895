"""Typed command options and positional argument parsing.

Commands declare an ordered list of OptionSpec. Tokens left over after
resolution are bound to them positionally; the last string option takes
whatever remains, so ``!note add buy more milk`` binds ``"buy more milk"``
to a single ``text`` option.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, model_validator

from .exceptions import ArgumentError


class OptionType(str, Enum):
    """Kinds of values an option accepts."""
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    USER = "user"
    ROLE = "role"
    CHANNEL = "channel"
    MENTIONABLE = "mentionable"


_CHOICE_TYPES = (OptionType.STRING, OptionType.INTEGER, OptionType.NUMBER)

_TRUE = frozenset({"true", "yes", "y", "on", "1"})
_FALSE = frozenset({"false", "no", "n", "off", "0"})

_MENTION_PATTERNS = {
    OptionType.USER: re.compile(r"^<@!?(\d+)>$"),
    OptionType.ROLE: re.compile(r"^<@&(\d+)>$"),
    OptionType.CHANNEL: re.compile(r"^<#(\d+)>$"),
    OptionType.MENTIONABLE: re.compile(r"^<@[!&]?(\d+)>$"),
}
_RAW_ID = re.compile(r"^\d+$")


class OptionSpec(BaseModel):
    """Schema for one command option.

    Attributes:
        name: Key the parsed value is stored under.
        description: Shown in usage and help output.
        type: Kind of value accepted.
        required: Whether parsing fails when the option is absent.
        choices: If set, the only values accepted (string, integer and
            number options only).
    """

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    type: OptionType = OptionType.STRING
    required: bool = False
    choices: Optional[List[Union[int, float, str]]] = None

    @model_validator(mode="after")
    def _choices_only_for_scalars(self):
        if self.choices is not None and self.type not in _CHOICE_TYPES:
            raise ValueError(f"choices are not supported for {self.type.value} options")
        return self

    def usage(self) -> str:
        return f"<{self.name}>" if self.required else f"[{self.name}]"


@dataclass
class CommandArguments:
    """Arguments handed to a command executor.

    Attributes:
        tokens: Leftover tokens, case preserved.
        options: Parsed option values keyed by option name.
    """

    tokens: List[str] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def raw(self) -> str:
        """Leftover tokens joined with single spaces."""
        return " ".join(self.tokens)

    def get(self, name: str, default: Any = None) -> Any:
        return self.options.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self.options[name]

    def __contains__(self, name: str) -> bool:
        return name in self.options


def _convert(option: OptionSpec, token: str) -> Any:
    if option.type is OptionType.STRING:
        value: Any = token
    elif option.type is OptionType.INTEGER:
        try:
            value = int(token)
        except ValueError:
            raise ArgumentError(
                f"`{option.name}` must be a whole number", option=option.name
            ) from None
    elif option.type is OptionType.NUMBER:
        try:
            value = float(token)
        except ValueError:
            raise ArgumentError(
                f"`{option.name}` must be a number", option=option.name
            ) from None
    elif option.type is OptionType.BOOLEAN:
        lowered = token.lower()
        if lowered in _TRUE:
            value = True
        elif lowered in _FALSE:
            value = False
        else:
            raise ArgumentError(
                f"`{option.name}` must be yes or no", option=option.name
            )
    else:
        match = _MENTION_PATTERNS[option.type].match(token)
        if match:
            value = match.group(1)
        elif _RAW_ID.match(token):
            value = token
        else:
            raise ArgumentError(
                f"`{option.name}` must be a {option.type.value} mention or id",
                option=option.name,
            )

    if option.choices is not None and value not in option.choices:
        allowed = ", ".join(str(c) for c in option.choices)
        raise ArgumentError(
            f"`{option.name}` must be one of: {allowed}", option=option.name
        )
    return value


def parse_arguments(options: Sequence[OptionSpec], tokens: Sequence[str]) -> CommandArguments:
    """Bind leftover tokens to ``options`` in declaration order.

    Commands that declare no options receive the tokens untouched.

    Raises:
        ArgumentError: A required option is missing, a token cannot be
            converted, a value is not among the option's choices, or
            tokens are left over once every option is bound.
    """
    tokens = list(tokens)
    parsed: Dict[str, Any] = {}
    remaining = list(tokens)

    for index, option in enumerate(options):
        if not remaining:
            if option.required:
                raise ArgumentError(f"Missing required option `{option.name}`", option=option.name)
            continue
        is_last = index == len(options) - 1
        if is_last and option.type is OptionType.STRING and option.choices is None:
            token = " ".join(remaining)
            remaining = []
        else:
            token = remaining.pop(0)
        parsed[option.name] = _convert(option, token)

    if options and remaining:
        raise ArgumentError(f"Unexpected argument `{remaining[0]}`")

    return CommandArguments(tokens=tokens, options=parsed)


def usage_line(path: str, options: Sequence[OptionSpec]) -> str:
    """Render ``path <required> [optional]`` for usage messages."""
    return " ".join([path, *(option.usage() for option in options)]).strip()
