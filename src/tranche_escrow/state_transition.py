"""Call replay entrypoints for the order registry.

A ``Call`` is the data form of one state-changing registry operation. Fixture
files store sequences of calls so that any implementation can be checked
against the same expected outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ErrorCode, EscrowError
from .registry import OrderRegistry
from .types import Address


class Operation(Enum):
    CREATE_ORDER = "create_order"
    MARK_AS_SHIPPED = "mark_as_shipped"
    CONFIRM_DELIVERY = "confirm_delivery"
    REQUEST_REFUND = "request_refund"
    DISPUTE_ORDER = "dispute_order"


_ORDER_OPERATIONS = frozenset({
    Operation.MARK_AS_SHIPPED,
    Operation.CONFIRM_DELIVERY,
    Operation.REQUEST_REFUND,
    Operation.DISPUTE_ORDER,
})


@dataclass
class Call:
    caller: Address
    operation: Operation
    order_id: Optional[int] = None
    provider: Optional[Address] = None
    amount: Optional[int] = None


class TransitionResult:
    """Thin wrapper for apply results."""

    def __init__(self, ok: bool, error: Optional[EscrowError] = None, order_id: Optional[int] = None):
        self.ok = ok
        self.error = error
        self.order_id = order_id

    @classmethod
    def success(cls, order_id: Optional[int] = None) -> "TransitionResult":
        return cls(True, None, order_id)

    @classmethod
    def failure(cls, error: EscrowError) -> "TransitionResult":
        return cls(False, error)

    def __repr__(self) -> str:
        if self.ok:
            return f"TransitionResult(ok, order_id={self.order_id})"
        return f"TransitionResult(failed, {self.error})"


def _dispatch(registry: OrderRegistry, call: Call) -> Optional[int]:
    op = call.operation
    if op == Operation.CREATE_ORDER:
        if call.provider is None or call.amount is None:
            raise EscrowError(ErrorCode.INVALID_PAYLOAD, "create_order needs provider and amount")
        return registry.create_order(call.caller, call.provider, call.amount)

    if op in _ORDER_OPERATIONS and call.order_id is None:
        raise EscrowError(ErrorCode.INVALID_PAYLOAD, f"{op.value} needs order_id")
    if op == Operation.MARK_AS_SHIPPED:
        registry.mark_as_shipped(call.caller, call.order_id)
    elif op == Operation.CONFIRM_DELIVERY:
        registry.confirm_delivery(call.caller, call.order_id)
    elif op == Operation.REQUEST_REFUND:
        registry.request_refund(call.caller, call.order_id)
    else:
        registry.dispute_order(call.caller, call.order_id)
    return call.order_id


def apply_call(registry: OrderRegistry, call: Call) -> TransitionResult:
    """Apply one call. Rejections become failed results, registry untouched."""
    try:
        order_id = _dispatch(registry, call)
    except EscrowError as exc:
        return TransitionResult.failure(exc)
    return TransitionResult.success(order_id)


def apply_calls(registry: OrderRegistry, calls: list[Call]) -> tuple[int, TransitionResult]:
    """Apply calls in order, stopping at the first failure.

    Returns the number of calls applied successfully and the last result.
    Unlike a block, earlier successful calls stay applied.
    """
    result = TransitionResult.success()
    for index, call in enumerate(calls):
        result = apply_call(registry, call)
        if not result.ok:
            return index, result
    return len(calls), result
