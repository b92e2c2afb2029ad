"""Error taxonomy for the apply-and-wait engine.

Callers need to tell apart "timed out" (WaiterError), "poison state detected"
(AbortError) and "write never succeeded" (ApplyError), so each outcome has its
own type. Everything the engine raises derives from ConvergeError.
"""

from typing import Optional


class ConvergeError(Exception):
    """Base class for all engine errors."""


class PathSyntaxError(ConvergeError, ValueError):
    """Raised when a field path cannot be parsed."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"invalid field path {path!r}: {detail}")


class MatchTypeError(ConvergeError, TypeError):
    """Raised when a matcher is asked to match a non-scalar value."""

    def __init__(self, value: object) -> None:
        self.type_name = type(value).__name__
        super().__init__(f"wait_for: cannot match on type {self.type_name!r}")


class AttributeNotPresentError(ConvergeError):
    """A field wait path did not fully resolve against the fetched object."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"attribute not present at path '{path}'")


class ResourceGoneError(ConvergeError):
    """The awaited resource no longer exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"resource was deleted: {name}")


class ShapeMismatchError(ConvergeError):
    """A fetched value does not fit the typed shape it was converted with."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        super().__init__(f"cannot convert value at '{path or '<root>'}': {detail}")


class RolloutStatusError(ConvergeError):
    """Rollout status could not be determined for a resource."""


class WaiterError(ConvergeError):
    """The deadline elapsed before the awaited predicate held."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"timed out waiting on {reason}")


class AbortError(ConvergeError):
    """An error-on rule matched; the wait was aborted before its deadline."""

    def __init__(
        self,
        resource: str,
        key: str,
        matched_value: str,
        pattern: str,
        custom_message: Optional[str] = None,
    ) -> None:
        self.resource = resource
        self.key = key
        self.matched_value = matched_value
        self.pattern = pattern
        self.custom_message = custom_message
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        if self.custom_message:
            return self.custom_message
        return (
            f"error condition met for {self.resource}: "
            f"field {self.key}={self.matched_value} matched pattern {self.pattern}"
        )


class ApplyError(ConvergeError):
    """The write operation failed on every attempt the retry policy allowed."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"could not apply manifest after {attempts} attempt(s): {last_error}")


class PermanentError(Exception):
    """Wrap an error in this to stop RetryingApplier from retrying it."""

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(str(cause))
