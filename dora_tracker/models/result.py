"""Outcome types for parse, correlate and scan steps.

Each step returns ``Ok``, ``Skipped`` or ``Failed`` instead of logging and
returning early, so callers decide how to aggregate.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, List, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Skipped:
    reason: str


@dataclass(frozen=True)
class Failed:
    error: BaseException

    @property
    def reason(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


Result = Union[Ok[T], Skipped, Failed]


@dataclass
class CorrelationReport:
    """Outcome of correlating one release or one batch of workflow runs."""

    subject: str
    outcome: Union[Ok[Any], Skipped, Failed]
    results: List[Union[Ok[Any], Skipped, Failed]] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(1 for r in self.results if isinstance(r, Ok) and r.value[1])

    @property
    def existing(self) -> int:
        return sum(1 for r in self.results if isinstance(r, Ok) and not r.value[1])

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if isinstance(r, Skipped))

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if isinstance(r, Failed))

    @property
    def deployments(self) -> list:
        return [r.value[0] for r in self.results if isinstance(r, Ok)]
