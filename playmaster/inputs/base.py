"""Sources of values that running tests ask for."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True, kw_only=True)
class InputRequest:
    """A running test is blocked waiting for a value."""

    input_name: str
    test_name: str | None = None


class InputProvider(ABC):
    """Capability of supplying a value for an input request."""

    @abstractmethod
    def provide(self, request: InputRequest) -> str | None:
        """Return the value, or None if this provider does not handle the request."""
