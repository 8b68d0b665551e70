"""
Outcome Types Module

Explicit result values returned by the amortization engine and the lifecycle
managers, so callers branch on the outcome instead of catching exceptions:

    result = solve_term_for_desired_payment(principal, rate, target)
    if isinstance(result, Unaffordable):
        ...  # render "no solution"
    elif result:
        plan = result.value

Only ``Ok`` is truthy.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar('T')


class OutcomeError(Exception):
    """Raised by ``unwrap()`` on a non-Ok outcome"""

    def __init__(self, outcome: Any):
        super().__init__(str(outcome))
        self.outcome = outcome


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value"""
    value: T = None

    def __bool__(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value


class _Failure:
    """Shared behaviour for non-Ok outcomes"""

    def __bool__(self) -> bool:
        return False

    def unwrap(self):
        raise OutcomeError(self)

    def unwrap_or(self, default):
        return default


@dataclass(frozen=True)
class InvalidInput(_Failure):
    """Caller supplied a non-positive amount, term or rate"""
    reason: str
    field: Optional[str] = None

    def __str__(self) -> str:
        if self.field:
            return f"Invalid {self.field}: {self.reason}"
        return f"Invalid input: {self.reason}"


@dataclass(frozen=True)
class Unaffordable(_Failure):
    """Target payment does not cover the interest accruing each month"""
    principal: Decimal
    monthly_rate: Decimal
    target_payment: Decimal

    @property
    def minimum_payment(self) -> Decimal:
        """Interest-only payment; anything above it eventually amortizes"""
        return self.principal * self.monthly_rate

    def __str__(self) -> str:
        return (f"Payment {self.target_payment} does not cover monthly interest "
                f"{self.minimum_payment} on {self.principal}")


@dataclass(frozen=True)
class BackendFailure(_Failure):
    """A network, storage, auth or RPC call to the backend failed"""
    operation: str
    detail: str
    status_code: Optional[int] = None

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    def __str__(self) -> str:
        return f"{self.operation} failed: {self.detail}"


Outcome = Union[Ok, InvalidInput, Unaffordable, BackendFailure]
