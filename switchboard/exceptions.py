"""Custom exception hierarchy for Switchboard.

Provides precise error classification across the engine so that
boundaries (dispatcher, initializer, loader) can decide what to log,
what to show the user, and what to treat as fatal.

Authorization denials are absent: a denial is an expected
outcome and is returned as a list of reasons, never raised.
"""

from enum import Enum
from typing import Any, List, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for diagnostics."""
    TRANSIENT = "transient"          # Outage, timeout, rate limit
    PERMANENT = "permanent"          # Bad input, programming error
    INFRASTRUCTURE = "infrastructure"  # Missing config, environment issues


class SwitchboardError(Exception):
    """Base exception for all Switchboard errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification used in diagnostics.
        module: Originating subsystem name (e.g. "dependencies").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(SwitchboardError):
    """Invalid or missing configuration.

    Defaults to INFRASTRUCTURE because config issues are environmental
    and won't resolve by retrying.
    """

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )


class ConfigurationMissingError(ConfigurationError):
    """No configuration section exists for a root command.

    Raised by the config provider; root construction catches it and
    permanently disables the root.
    """

    def __init__(self, module_name: str, **context: Any) -> None:
        self.module_name = module_name
        super().__init__(
            f"No config section found for module {module_name!r}",
            setting_name=f"modules.{module_name}",
            **context,
        )


# ---------------------------------------------------------------------------
# Command tree exceptions
# ---------------------------------------------------------------------------

class RegistrationError(SwitchboardError):
    """A node could not be attached to the command tree.

    Covers invalid names, duplicate siblings, second parents and cycles.
    """

    def __init__(
        self,
        message: str = "",
        *,
        node: Optional[str] = None,
        parent: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.node = node
        self.parent = parent
        super().__init__(
            message,
            category=ErrorCategory.PERMANENT,
            module="tree",
            **context,
        )


# ---------------------------------------------------------------------------
# Dependency exceptions
# ---------------------------------------------------------------------------

class DependencyResolutionError(SwitchboardError):
    """A dependency's resolution function failed or timed out.

    Stored inside the dependency's Failed outcome; never raised past
    the dependency itself.
    """

    def __init__(
        self,
        message: str = "",
        *,
        dependency: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        **context: Any,
    ) -> None:
        self.dependency = dependency
        super().__init__(
            message, category=category, module="dependencies", **context
        )


class DependencyStateError(SwitchboardError):
    """A dependency value was read before it was successfully resolved."""

    def __init__(self, message: str = "", *, dependency: Optional[str] = None) -> None:
        self.dependency = dependency
        super().__init__(message, module="dependencies", dependency=dependency)


# ---------------------------------------------------------------------------
# Dispatch exceptions
# ---------------------------------------------------------------------------

class ArgumentError(SwitchboardError):
    """Leftover tokens did not satisfy a command's option schema.

    Attributes:
        option: Name of the offending option (if known).
    """

    def __init__(
        self,
        message: str = "",
        *,
        option: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.option = option
        super().__init__(message, module="arguments", **context)


class ExecutionError(SwitchboardError):
    """A command executor raised or timed out.

    Attributes:
        command: Space-joined path of the command that failed.
        incident_id: Identifier shown to the user and written to the log.
    """

    def __init__(
        self,
        message: str = "",
        *,
        command: Optional[str] = None,
        incident_id: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        **context: Any,
    ) -> None:
        self.command = command
        self.incident_id = incident_id
        super().__init__(message, category=category, module="dispatch", **context)


class InitializationError(SwitchboardError):
    """A root command's initializer failed; the root is disabled.

    Attributes:
        root: Name of the root command.
        missing: Names of dependencies that failed, when that is the cause.
    """

    def __init__(
        self,
        message: str = "",
        *,
        root: Optional[str] = None,
        missing: Optional[List[str]] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        **context: Any,
    ) -> None:
        self.root = root
        self.missing = missing or []
        super().__init__(message, category=category, module="core", **context)
