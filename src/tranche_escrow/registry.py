"""Order registry and settlement state machine.

Each order moves along one of three one-way paths::

    CREATED -> SHIPPED -> DELIVERED
    CREATED -> SHIPPED -> DISPUTED
    CREATED -> REFUNDED

Every state-changing call checks, in this order: order existence, caller
identity, current status, and the deadline. Only then does it call the ledger,
and only after the ledger accepts does it mutate the order. A rejected call
therefore leaves no trace.

Locking: each order has its own lock held across check and commit. The id
counter, the order table, the party indexes and the event log share one
registry lock. Order locks are always taken before the registry lock.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .clock import Clock
from .config import (
    ADDRESS_SIZE,
    FIRST_ORDER_ID,
    FIRST_PAYMENT_PERCENT,
    ORDER_WINDOW_SECONDS,
    PERCENT_BASE,
    U256_MAX,
    ZERO_ADDRESS,
)
from .errors import ErrorCode, EscrowError, LedgerError
from .ledger import Ledger
from .types import (
    Address,
    Order,
    OrderActions,
    OrderCreated,
    OrderDelivered,
    OrderDisputed,
    OrderEvent,
    OrderRefunded,
    OrderShipped,
    OrderStatus,
    PaymentSummary,
)

logger = logging.getLogger(__name__)


def split_payment(total_amount: int) -> Tuple[int, int]:
    """Split ``total_amount`` into (shipment tranche, delivery tranche).

    The shipment tranche is floor(70%); the delivery tranche takes the
    remainder so the two always sum to the total.
    """
    first = total_amount * FIRST_PAYMENT_PERCENT // PERCENT_BASE
    return first, total_amount - first


def _reject(code: ErrorCode, message: str) -> EscrowError:
    logger.debug(f"rejected {code.name}: {message}")
    return EscrowError(code, message)


def _is_address(value: object) -> bool:
    return isinstance(value, bytes) and len(value) == ADDRESS_SIZE


def _require_caller(expected: Address, caller: Address, role: str) -> None:
    if caller != expected:
        raise _reject(ErrorCode.UNAUTHORIZED, f"caller is not the order {role}")


def _require_status(order: Order, status: OrderStatus) -> None:
    if order.status != status:
        raise _reject(
            ErrorCode.INVALID_ORDER_STATE,
            f"order {order.id} is {order.status.name}, expected {status.name}",
        )


def _require_before_deadline(order: Order, now: int) -> None:
    if now > order.deadline:
        raise _reject(ErrorCode.DEADLINE_PASSED, f"order {order.id} deadline {order.deadline} passed at {now}")


class OrderRegistry:
    """Custodian of all orders; the only writer of order state."""

    def __init__(
        self,
        ledger: Ledger,
        clock: Clock,
        address: Address,
        orders: Optional[Iterable[Order]] = None,
        next_order_id: Optional[int] = None,
    ) -> None:
        if not _is_address(address) or address == ZERO_ADDRESS:
            raise ValueError("registry address must be a non-zero 20-byte address")
        self._ledger = ledger
        self._clock = clock
        self._address = address
        self._lock = threading.RLock()
        self._orders: Dict[int, Order] = {}
        self._order_locks: Dict[int, threading.Lock] = {}
        self._by_customer: Dict[Address, List[int]] = {}
        self._by_provider: Dict[Address, List[int]] = {}
        self._events: List[OrderEvent] = []
        self._next_id = FIRST_ORDER_ID

        for order in sorted(orders or (), key=lambda o: o.id):
            self._restore(order)
        if next_order_id is not None:
            if next_order_id < self._next_id:
                raise ValueError("next_order_id would reuse an existing id")
            self._next_id = next_order_id

    def _restore(self, order: Order) -> None:
        if isinstance(order.id, bool) or not isinstance(order.id, int):
            raise ValueError(f"order id must be an integer, got {order.id!r}")
        if order.id < FIRST_ORDER_ID or order.id in self._orders:
            raise ValueError(f"invalid or duplicate order id {order.id}")
        for party in (order.customer, order.provider):
            if not _is_address(party) or party == ZERO_ADDRESS:
                raise ValueError(f"order {order.id} has a null or malformed party")
        if order.customer == order.provider:
            raise ValueError(f"order {order.id} customer is also provider")
        if order.total_amount <= 0 or order.total_amount > U256_MAX:
            raise ValueError(f"order {order.id} total out of range")
        if (order.first_payment, order.second_payment) != split_payment(order.total_amount):
            raise ValueError(f"order {order.id} tranches do not match the total")
        if order.second_payment_released and not order.first_payment_released:
            raise ValueError(f"order {order.id} released second tranche before first")
        status = OrderStatus(order.status)
        if status == OrderStatus.REFUNDED and order.first_payment_released:
            raise ValueError(f"refunded order {order.id} cannot carry released tranches")
        self._orders[order.id] = replace(order, status=status)
        self._order_locks[order.id] = threading.Lock()
        self._by_customer.setdefault(order.customer, []).append(order.id)
        self._by_provider.setdefault(order.provider, []).append(order.id)
        self._next_id = max(self._next_id, order.id + 1)

    # --- properties ---

    @property
    def address(self) -> Address:
        return self._address

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def order_count(self) -> int:
        with self._lock:
            return len(self._orders)

    @property
    def next_order_id(self) -> int:
        with self._lock:
            return self._next_id

    @property
    def events(self) -> Tuple[OrderEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def events_since(self, index: int) -> Tuple[OrderEvent, ...]:
        """Events appended at or after position ``index`` of the log."""
        with self._lock:
            return tuple(self._events[index:])

    # --- internals ---

    def _emit(self, event: OrderEvent) -> None:
        with self._lock:
            self._events.append(event)

    @contextmanager
    def _locked_order(self, order_id: int) -> Iterator[Order]:
        if isinstance(order_id, bool) or not isinstance(order_id, int):
            raise _reject(ErrorCode.ORDER_NOT_FOUND, f"order id {order_id!r} is not an integer")
        with self._lock:
            order_lock = self._order_locks.get(order_id)
        if order_lock is None:
            raise _reject(ErrorCode.ORDER_NOT_FOUND, f"order {order_id} not found")
        with order_lock:
            yield self._orders[order_id]

    def _pay(self, recipient: Address, amount: int) -> None:
        try:
            accepted = self._ledger.transfer(self._address, recipient, amount)
        except LedgerError as exc:
            raise _reject(ErrorCode.TRANSFER_FAILED, f"ledger error: {exc}") from exc
        if not accepted:
            raise _reject(ErrorCode.TRANSFER_FAILED, f"ledger refused payout of {amount}")

    # --- state-changing operations ---

    def create_order(self, caller: Address, provider: Address, amount: int) -> int:
        """Pull ``amount`` from ``caller`` into custody and open a new order."""
        if not _is_address(caller) or caller == ZERO_ADDRESS:
            raise _reject(ErrorCode.INVALID_ADDRESS, "caller must be a non-zero 20-byte address")
        if not _is_address(provider) or provider == ZERO_ADDRESS:
            raise _reject(ErrorCode.INVALID_PROVIDER, "provider must be a non-zero address")
        if provider == caller:
            raise _reject(ErrorCode.INVALID_PROVIDER, "customer cannot be provider")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise _reject(ErrorCode.INVALID_AMOUNT, "amount must be an integer")
        if amount <= 0:
            raise _reject(ErrorCode.INVALID_AMOUNT, "amount must be > 0")
        if amount > U256_MAX:
            raise _reject(ErrorCode.INVALID_AMOUNT, "amount exceeds ledger range")

        with self._lock:
            now = self._clock.now()
            try:
                accepted = self._ledger.transfer_from(self._address, caller, self._address, amount)
            except LedgerError as exc:
                raise _reject(ErrorCode.TRANSFER_FAILED, f"ledger error: {exc}") from exc
            if not accepted:
                raise _reject(ErrorCode.TRANSFER_FAILED, f"ledger refused custody pull of {amount}")

            order_id = self._next_id
            self._next_id += 1
            first, second = split_payment(amount)
            order = Order(
                id=order_id,
                customer=caller,
                provider=provider,
                total_amount=amount,
                first_payment=first,
                second_payment=second,
                status=OrderStatus.CREATED,
                deadline=now + ORDER_WINDOW_SECONDS,
                created_at=now,
            )
            self._orders[order_id] = order
            self._order_locks[order_id] = threading.Lock()
            self._by_customer.setdefault(caller, []).append(order_id)
            self._by_provider.setdefault(provider, []).append(order_id)
            self._emit(OrderCreated(order_id, caller, provider, amount, order.deadline))

        logger.info(f"order {order_id} created: total={amount} deadline={order.deadline}")
        return order_id

    def mark_as_shipped(self, caller: Address, order_id: int) -> None:
        """Provider marks the order shipped and receives the first tranche."""
        with self._locked_order(order_id) as order:
            now = self._clock.now()
            _require_caller(order.provider, caller, "provider")
            _require_status(order, OrderStatus.CREATED)
            _require_before_deadline(order, now)

            self._pay(order.provider, order.first_payment)
            order.first_payment_released = True
            order.status = OrderStatus.SHIPPED
            self._emit(OrderShipped(order.id, order.first_payment, now))
        logger.info(f"order {order_id} shipped: released {order.first_payment}")

    def confirm_delivery(self, caller: Address, order_id: int) -> None:
        """Customer confirms delivery, releasing the second tranche."""
        with self._locked_order(order_id) as order:
            now = self._clock.now()
            _require_caller(order.customer, caller, "customer")
            _require_status(order, OrderStatus.SHIPPED)

            self._pay(order.provider, order.second_payment)
            order.second_payment_released = True
            order.status = OrderStatus.DELIVERED
            self._emit(OrderDelivered(order.id, order.second_payment, now))
        logger.info(f"order {order_id} delivered: released {order.second_payment}")

    def request_refund(self, caller: Address, order_id: int) -> None:
        """Customer reclaims the full amount of an order never shipped in time."""
        with self._locked_order(order_id) as order:
            now = self._clock.now()
            _require_caller(order.customer, caller, "customer")
            _require_status(order, OrderStatus.CREATED)
            if now <= order.deadline:
                raise _reject(
                    ErrorCode.DEADLINE_NOT_REACHED,
                    f"order {order.id} refundable after {order.deadline}, now {now}",
                )

            self._pay(order.customer, order.total_amount)
            order.status = OrderStatus.REFUNDED
            self._emit(OrderRefunded(order.id, order.total_amount, now))
        logger.info(f"order {order_id} refunded: returned {order.total_amount}")

    def dispute_order(self, caller: Address, order_id: int) -> None:
        """Customer disputes a shipped order; the second tranche stays frozen."""
        # The dispute window closes at the creation-time deadline, the same
        # one that bounds shipping.
        with self._locked_order(order_id) as order:
            now = self._clock.now()
            _require_caller(order.customer, caller, "customer")
            _require_status(order, OrderStatus.SHIPPED)
            _require_before_deadline(order, now)

            order.status = OrderStatus.DISPUTED
            self._emit(OrderDisputed(order.id, now))
        logger.info(f"order {order_id} disputed: {order.second_payment} frozen")

    # --- reads ---

    def get_order(self, order_id: int) -> Order:
        with self._locked_order(order_id) as order:
            return replace(order)

    def get_order_actions(self, order_id: int) -> OrderActions:
        with self._locked_order(order_id) as order:
            now = self._clock.now()
            in_window = now <= order.deadline
            created = order.status == OrderStatus.CREATED
            shipped = order.status == OrderStatus.SHIPPED
            return OrderActions(
                status=order.status,
                can_ship=created and in_window,
                can_confirm=shipped,
                can_refund=created and not in_window,
                can_dispute=shipped and in_window,
            )

    def get_payment_summary(self, order_id: int) -> PaymentSummary:
        with self._locked_order(order_id) as order:
            paid = order.paid_amount
            return PaymentSummary(
                total=order.total_amount,
                paid=paid,
                remaining=order.total_amount - paid,
                first_released=order.first_payment_released,
                second_released=order.second_payment_released,
            )

    def get_customer_orders(self, customer: Address) -> Tuple[int, ...]:
        with self._lock:
            return tuple(self._by_customer.get(customer, ()))

    def get_provider_orders(self, provider: Address) -> Tuple[int, ...]:
        with self._lock:
            return tuple(self._by_provider.get(provider, ()))

    def orders(self) -> List[Order]:
        """Copies of every order, by id."""
        with self._lock:
            ids = sorted(self._orders)
        return [self.get_order(order_id) for order_id in ids]

    def expected_custody(self) -> int:
        """Value the registry should hold, summed from order state."""
        return sum(order.custody_amount for order in self.orders())
