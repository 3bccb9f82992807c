"""
Ordered Fallback Strategies

Grant continuation and outgoing payment creation both face an upstream that
rejects some request shapes for reasons that cannot be known in advance.
Each is expressed as an ordered list of named strategies run by
run_strategies(): the first success wins, every failure is recorded, and the
caller decides which error to raise once the list is exhausted.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from ..exceptions import OpenPaymentsError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Strategy(Generic[T]):
    """A named attempt. run is called at most once."""
    name: str
    run: Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class StrategyFailure:
    """Why one strategy failed."""
    name: str
    message: str
    status: Optional[int] = None
    body: Any = None

    @classmethod
    def from_error(cls, name: str, error: OpenPaymentsError) -> "StrategyFailure":
        status = getattr(error, "upstream_status", None) or error.details.get("upstream_status")
        body = getattr(error, "body", None)
        if body is None:
            body = error.details.get("body")
        return cls(name=name, message=error.message, status=status, body=body)

    def to_dict(self) -> Dict[str, Any]:
        return {"strategy": self.name, "status": self.status, "message": self.message}


@dataclass
class StrategyOutcome(Generic[T]):
    """The winning strategy, its result, and the failures that preceded it."""
    name: str
    result: T
    failures: List[StrategyFailure] = field(default_factory=list)


class StrategiesExhausted(Exception):
    """Every strategy in the list failed."""

    def __init__(self, label: str, failures: List[StrategyFailure]):
        self.label = label
        self.failures = failures
        super().__init__(f"{label}: all {len(failures)} strategies failed")

    @property
    def last(self) -> Optional[StrategyFailure]:
        return self.failures[-1] if self.failures else None

    def attempts(self) -> List[Dict[str, Any]]:
        return [f.to_dict() for f in self.failures]


async def run_strategies(label: str, strategies: Sequence[Strategy[T]]) -> StrategyOutcome[T]:
    """
    Run strategies in order until one succeeds.

    Only gateway errors (OpenPaymentsError) count as a strategy failure;
    anything else is a bug and propagates immediately.

    Raises:
        StrategiesExhausted: With one StrategyFailure per strategy
    """
    failures: List[StrategyFailure] = []

    for strategy in strategies:
        logger.info(f"{label}: trying {strategy.name}")
        try:
            result = await strategy.run()
        except OpenPaymentsError as e:
            failure = StrategyFailure.from_error(strategy.name, e)
            failures.append(failure)
            logger.warning(f"{label}: {strategy.name} failed (status={failure.status}): {failure.message}")
            continue

        if failures:
            logger.info(f"{label}: {strategy.name} succeeded after {len(failures)} failed attempt(s)")
        return StrategyOutcome(name=strategy.name, result=result, failures=failures)

    raise StrategiesExhausted(label, failures)
