"""Test lifecycle events recognised in the test driver's output."""

from dataclasses import dataclass


@dataclass(frozen=True, kw_only=True)
class Started:
    """A test began."""

    name: str


@dataclass(frozen=True, kw_only=True)
class Passed:
    """The current test passed."""

    name: str


@dataclass(frozen=True, kw_only=True)
class Failed:
    """The current test failed, with the output it produced."""

    name: str
    output: str


@dataclass(frozen=True, kw_only=True)
class ProgressNoise:
    """Recognised line that carries no test outcome."""

    line: str


type TestEvent = Started | Passed | Failed | ProgressNoise
