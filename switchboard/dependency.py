"""Lazily resolved external resources with memoized outcome.

A Dependency wraps something a command needs before it can run: an API
key, a database client, a remote service handle. The resolution function
runs at most once per instance. Success is cached; failure is cached as
well and is never retried, so a broken resource is not hammered by every
request that touches it.

Key classes:
    Dependency: The resource gate.
    Resolved: Outcome variant carrying the resolved value.
    Failed: Outcome variant carrying the resolution error.

Constants:
    UNATTEMPTED: Outcome of a dependency nobody has resolved yet.
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from .exceptions import DependencyResolutionError, DependencyStateError

logger = structlog.get_logger("switchboard.dependencies")


class _Unattempted:
    """Outcome of a dependency whose resolution has not started."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNATTEMPTED"


UNATTEMPTED = _Unattempted()


@dataclass(frozen=True)
class Resolved:
    """Successful resolution outcome."""
    value: Any


@dataclass(frozen=True)
class Failed:
    """Failed resolution outcome. Permanent for the instance."""
    error: DependencyResolutionError


Outcome = Union[_Unattempted, Resolved, Failed]

Resolver = Callable[[], Union[Any, Awaitable[Any]]]


class Dependency:
    """A named resource with a memoized, single-attempt resolution.

    Args:
        name: Short descriptive term shown in diagnostics and in the
            "dependency unavailable" response (e.g. ``mongodb``).
        resolver: Callable returning the resource, sync or async. Raise
            to signal that the resource cannot be obtained.
        timeout: Optional seconds after which a pending resolution is
            treated as failed.
    """

    def __init__(self, name: str, resolver: Resolver, timeout: Optional[float] = None):
        self.name = name
        self._resolver = resolver
        self._timeout = timeout
        self._outcome: Outcome = UNATTEMPTED
        self._in_flight: Optional[asyncio.Future] = None

    def __repr__(self) -> str:
        return f"Dependency({self.name!r}, outcome={self._outcome!r})"

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    def set_default_timeout(self, timeout: Optional[float]) -> None:
        """Apply ``timeout`` unless one was given at construction."""
        if self._timeout is None:
            self._timeout = timeout

    @property
    def outcome(self) -> Outcome:
        return self._outcome

    @property
    def attempted(self) -> bool:
        """Whether a resolution attempt has finished (either way)."""
        return self._outcome is not UNATTEMPTED

    @property
    def failed(self) -> bool:
        return isinstance(self._outcome, Failed)

    @property
    def resolved(self) -> bool:
        return isinstance(self._outcome, Resolved)

    async def resolve(self) -> Union[Resolved, Failed]:
        """Resolve the dependency once and return the cached outcome.

        Concurrent first callers share one in-flight attempt. Once an
        outcome is recorded it is returned as-is; a Failed outcome is
        never retried.
        """
        if self._outcome is not UNATTEMPTED:
            return self._outcome

        if self._in_flight is None:
            self._in_flight = asyncio.ensure_future(self._attempt())
        # Shield so a cancelled caller does not cancel the shared attempt
        return await asyncio.shield(self._in_flight)

    async def _attempt(self) -> Union[Resolved, Failed]:
        try:
            result = self._resolver()
            if inspect.isawaitable(result):
                if self._timeout is not None:
                    result = await asyncio.wait_for(result, timeout=self._timeout)
                else:
                    result = await result
        except asyncio.TimeoutError:
            error = DependencyResolutionError(
                f"Resolution of {self.name!r} timed out",
                dependency=self.name,
                timeout=self._timeout,
            )
            self._outcome = Failed(error)
        except Exception as e:
            error = DependencyResolutionError(
                f"Resolution of {self.name!r} failed",
                dependency=self.name,
                error_type=type(e).__name__,
            )
            error.__cause__ = e
            self._outcome = Failed(error)
        else:
            self._outcome = Resolved(result)
        finally:
            self._in_flight = None

        if isinstance(self._outcome, Failed):
            logger.warning(
                "dependency_resolution_failed",
                dependency=self.name,
                error=str(self._outcome.error),
                cause=repr(self._outcome.error.__cause__),
            )
        else:
            logger.info("dependency_resolved", dependency=self.name)
        return self._outcome

    def fetch_value(self) -> Any:
        """Return the resolved value.

        Only meant for code running behind a guard that already checked
        the dependency, such as a command executor.

        Raises:
            DependencyStateError: If resolution was never attempted, is
                still running, or failed.
        """
        if isinstance(self._outcome, Resolved):
            return self._outcome.value
        if isinstance(self._outcome, Failed):
            raise DependencyStateError(
                f"Dependency {self.name!r} failed to resolve", dependency=self.name
            )
        raise DependencyStateError(
            f"Dependency {self.name!r} has not been resolved", dependency=self.name
        )
