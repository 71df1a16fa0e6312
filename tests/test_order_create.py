"""create_order specs."""

from __future__ import annotations

import pytest

from tranche_escrow.clock import ManualClock
from tranche_escrow.config import ORDER_WINDOW_SECONDS, U256_MAX, ZERO_ADDRESS
from tranche_escrow.errors import ErrorCode, EscrowError
from tranche_escrow.ledger import InMemoryLedger
from tranche_escrow.registry import OrderRegistry, split_payment
from tranche_escrow.state_transition import Call, Operation
from tranche_escrow.test_accounts import ALICE, BOB, CAROL, DAVE, REGISTRY
from tranche_escrow.types import OrderCreated, OrderStatus

START = 1_700_000_000


def _base_registry(balance: int = 10_000, allowance: int = 10_000) -> OrderRegistry:
    ledger = InMemoryLedger()
    ledger.mint(ALICE, balance)
    ledger.approve(ALICE, REGISTRY, allowance)
    return OrderRegistry(ledger, ManualClock(START), REGISTRY)


def _create_call(provider: bytes, amount: int, caller: bytes = ALICE) -> Call:
    return Call(caller=caller, operation=Operation.CREATE_ORDER, provider=provider, amount=amount)


def _assert_untouched(registry: OrderRegistry) -> None:
    assert registry.order_count == 0
    assert registry.next_order_id == 1
    assert registry.events == ()
    assert registry.get_customer_orders(ALICE) == ()
    assert registry.ledger.balance_of(ALICE) == 10_000
    assert registry.ledger.balance_of(REGISTRY) == 0


def test_create_order_success(state_test_group) -> None:
    registry = _base_registry()
    result = state_test_group(
        "orders/create_order.json",
        "create_order_success",
        registry,
        _create_call(BOB, 1000),
    )
    assert result.ok
    assert result.order_id == 1

    order = registry.get_order(1)
    assert order.customer == ALICE
    assert order.provider == BOB
    assert order.total_amount == 1000
    assert order.first_payment == 700
    assert order.second_payment == 300
    assert order.status == OrderStatus.CREATED
    assert order.deadline == START + ORDER_WINDOW_SECONDS
    assert order.created_at == START
    assert not order.first_payment_released
    assert not order.second_payment_released

    assert registry.ledger.balance_of(ALICE) == 9000
    assert registry.ledger.balance_of(REGISTRY) == 1000
    assert registry.ledger.balance_of(BOB) == 0
    assert registry.ledger.allowance(ALICE, REGISTRY) == 9000
    assert registry.events == (OrderCreated(1, ALICE, BOB, 1000, START + ORDER_WINDOW_SECONDS),)


def test_create_order_ids_are_sequential() -> None:
    registry = _base_registry()
    ids = [registry.create_order(ALICE, provider, 100) for provider in (BOB, CAROL, BOB)]
    assert ids == [1, 2, 3]
    assert registry.next_order_id == 4
    assert registry.get_customer_orders(ALICE) == (1, 2, 3)
    assert registry.get_provider_orders(BOB) == (1, 3)
    assert registry.get_provider_orders(CAROL) == (2,)


def test_create_order_zero_amount(state_test_group) -> None:
    registry = _base_registry()
    result = state_test_group(
        "orders/create_order.json",
        "create_order_zero_amount",
        registry,
        _create_call(BOB, 0),
    )
    assert not result.ok
    assert result.error.code == ErrorCode.INVALID_AMOUNT
    _assert_untouched(registry)


def test_create_order_zero_provider(state_test_group) -> None:
    registry = _base_registry()
    result = state_test_group(
        "orders/create_order.json",
        "create_order_zero_provider",
        registry,
        _create_call(ZERO_ADDRESS, 1000),
    )
    assert result.error.code == ErrorCode.INVALID_PROVIDER
    _assert_untouched(registry)


def test_create_order_self_provider(state_test_group) -> None:
    registry = _base_registry()
    result = state_test_group(
        "orders/create_order.json",
        "create_order_self_provider",
        registry,
        _create_call(ALICE, 1000),
    )
    assert result.error.code == ErrorCode.INVALID_PROVIDER
    _assert_untouched(registry)


def test_create_order_provider_checked_before_amount() -> None:
    registry = _base_registry()
    with pytest.raises(EscrowError) as excinfo:
        registry.create_order(ALICE, ZERO_ADDRESS, 0)
    assert excinfo.value.code == ErrorCode.INVALID_PROVIDER


def test_create_order_malformed_provider() -> None:
    registry = _base_registry()
    with pytest.raises(EscrowError) as excinfo:
        registry.create_order(ALICE, b"\x01" * 5, 1000)
    assert excinfo.value.code == ErrorCode.INVALID_PROVIDER
    _assert_untouched(registry)


def test_create_order_malformed_caller() -> None:
    registry = _base_registry()
    with pytest.raises(EscrowError) as excinfo:
        registry.create_order(b"alice", BOB, 1000)
    assert excinfo.value.code == ErrorCode.INVALID_ADDRESS


def test_create_order_zero_caller() -> None:
    registry = _base_registry()
    registry.ledger.mint(ZERO_ADDRESS, 10_000)
    registry.ledger.approve(ZERO_ADDRESS, REGISTRY, 10_000)
    with pytest.raises(EscrowError) as excinfo:
        registry.create_order(ZERO_ADDRESS, BOB, 1000)
    assert excinfo.value.code == ErrorCode.INVALID_ADDRESS
    assert registry.order_count == 0
    assert registry.ledger.balance_of(ZERO_ADDRESS) == 10_000
    assert registry.ledger.balance_of(REGISTRY) == 0


@pytest.mark.parametrize("amount", [-1, U256_MAX + 1, 10.5, True])
def test_create_order_invalid_amount_values(amount) -> None:
    registry = _base_registry()
    with pytest.raises(EscrowError) as excinfo:
        registry.create_order(ALICE, BOB, amount)
    assert excinfo.value.code == ErrorCode.INVALID_AMOUNT
    _assert_untouched(registry)


def test_create_order_insufficient_allowance(state_test_group) -> None:
    registry = _base_registry(allowance=999)
    result = state_test_group(
        "orders/create_order.json",
        "create_order_insufficient_allowance",
        registry,
        _create_call(BOB, 1000),
    )
    assert result.error.code == ErrorCode.TRANSFER_FAILED
    assert registry.order_count == 0
    assert registry.next_order_id == 1
    assert registry.ledger.balance_of(ALICE) == 10_000
    assert registry.ledger.allowance(ALICE, REGISTRY) == 999


def test_create_order_insufficient_balance(state_test_group) -> None:
    registry = _base_registry(balance=500)
    result = state_test_group(
        "orders/create_order.json",
        "create_order_insufficient_balance",
        registry,
        _create_call(BOB, 1000),
    )
    assert result.error.code == ErrorCode.TRANSFER_FAILED
    assert registry.order_count == 0
    assert registry.get_provider_orders(BOB) == ()
    assert registry.ledger.balance_of(ALICE) == 500
    assert registry.ledger.allowance(ALICE, REGISTRY) == 10_000


def test_create_order_failed_pull_does_not_consume_id() -> None:
    registry = _base_registry(balance=1500)
    assert registry.create_order(ALICE, BOB, 1000) == 1
    with pytest.raises(EscrowError):
        registry.create_order(ALICE, BOB, 1000)
    registry.ledger.mint(ALICE, 1000)
    assert registry.create_order(ALICE, BOB, 1000) == 2


def test_create_order_missing_amount(state_test_group) -> None:
    registry = _base_registry()
    call = Call(caller=ALICE, operation=Operation.CREATE_ORDER, provider=BOB)
    result = state_test_group(
        "orders/create_order.json",
        "create_order_missing_amount",
        registry,
        call,
    )
    assert result.error.code == ErrorCode.INVALID_PAYLOAD
    _assert_untouched(registry)


def test_create_order_other_customer() -> None:
    registry = _base_registry()
    registry.ledger.mint(DAVE, 50)
    registry.ledger.approve(DAVE, REGISTRY, 50)
    order_id = registry.create_order(DAVE, CAROL, 50)
    order = registry.get_order(order_id)
    assert (order.customer, order.provider) == (DAVE, CAROL)
    assert registry.get_customer_orders(DAVE) == (order_id,)
    assert registry.get_customer_orders(ALICE) == ()


# --- tranche split vectors ---


@pytest.mark.parametrize(
    "total",
    [1, 2, 3, 7, 9, 10, 11, 99, 101, 999, 1000, 1001, 10**18 + 7, U256_MAX],
)
def test_split_payment(vector_test_group, total: int) -> None:
    first, second = split_payment(total)
    assert first + second == total
    assert first == total * 70 // 100
    assert second >= 0
    vector_test_group(
        "models/tranche_split.json",
        {
            "name": f"split_{total}",
            "input": {"total_amount": str(total)},
            "expected": {"first_payment": str(first), "second_payment": str(second)},
        },
    )


def test_split_payment_rounding_goes_to_second_tranche() -> None:
    assert split_payment(1) == (0, 1)
    assert split_payment(3) == (2, 1)
    assert split_payment(1001) == (700, 301)
