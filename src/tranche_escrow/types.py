"""Core types for the tranche escrow registry.

Addresses are raw 20-byte identities. Amounts are integer base units of the
single ledger token; timestamps are integer unix seconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Union

Address = bytes


class OrderStatus(IntEnum):
    CREATED = 0
    SHIPPED = 1
    DELIVERED = 2
    DISPUTED = 3
    REFUNDED = 4

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.DISPUTED,
    OrderStatus.REFUNDED,
})


@dataclass
class Order:
    id: int
    customer: Address
    provider: Address
    total_amount: int
    first_payment: int
    second_payment: int
    status: OrderStatus
    deadline: int
    first_payment_released: bool = False
    second_payment_released: bool = False
    created_at: int = 0

    @property
    def paid_amount(self) -> int:
        paid = 0
        if self.first_payment_released:
            paid += self.first_payment
        if self.second_payment_released:
            paid += self.second_payment
        return paid

    @property
    def custody_amount(self) -> int:
        """Value still held by the registry for this order."""
        if self.status == OrderStatus.REFUNDED:
            return 0
        return self.total_amount - self.paid_amount


@dataclass(frozen=True)
class OrderActions:
    status: OrderStatus
    can_ship: bool
    can_confirm: bool
    can_refund: bool
    can_dispute: bool


@dataclass(frozen=True)
class PaymentSummary:
    total: int
    paid: int
    remaining: int
    first_released: bool
    second_released: bool


# --- Events ---


@dataclass(frozen=True)
class OrderCreated:
    order_id: int
    customer: Address
    provider: Address
    total_amount: int
    deadline: int


@dataclass(frozen=True)
class OrderShipped:
    order_id: int
    first_payment: int
    timestamp: int


@dataclass(frozen=True)
class OrderDelivered:
    order_id: int
    second_payment: int
    timestamp: int


@dataclass(frozen=True)
class OrderRefunded:
    order_id: int
    total_amount: int
    timestamp: int


@dataclass(frozen=True)
class OrderDisputed:
    order_id: int
    timestamp: int


OrderEvent = Union[OrderCreated, OrderShipped, OrderDelivered, OrderRefunded, OrderDisputed]
