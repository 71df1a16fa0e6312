"""Helpers to serialize/deserialize registry fixtures."""

from __future__ import annotations

from typing import Any

from tranche_escrow.clock import ManualClock
from tranche_escrow.ledger import InMemoryLedger
from tranche_escrow.registry import OrderRegistry
from tranche_escrow.state_transition import Call, Operation
from tranche_escrow.types import Order, OrderStatus


def _hex_to_bytes(v: str) -> bytes:
    return bytes.fromhex(v)


def _bytes_to_hex(v: bytes) -> str:
    return v.hex()


def order_to_json(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "customer": _bytes_to_hex(order.customer),
        "provider": _bytes_to_hex(order.provider),
        "total_amount": order.total_amount,
        "first_payment": order.first_payment,
        "second_payment": order.second_payment,
        "status": int(order.status),
        "deadline": order.deadline,
        "first_payment_released": order.first_payment_released,
        "second_payment_released": order.second_payment_released,
        "created_at": order.created_at,
    }


def order_from_json(data: dict[str, Any]) -> Order:
    return Order(
        id=data["id"],
        customer=_hex_to_bytes(data["customer"]),
        provider=_hex_to_bytes(data["provider"]),
        total_amount=data["total_amount"],
        first_payment=data["first_payment"],
        second_payment=data["second_payment"],
        status=OrderStatus(data["status"]),
        deadline=data["deadline"],
        first_payment_released=data.get("first_payment_released", False),
        second_payment_released=data.get("second_payment_released", False),
        created_at=data.get("created_at", 0),
    )


def state_to_json(registry: OrderRegistry) -> dict[str, Any]:
    # Fixtures only cover the in-memory ledger; other ledgers have no
    # exportable balance table.
    ledger = registry.ledger
    if not isinstance(ledger, InMemoryLedger):
        raise TypeError("fixtures require an InMemoryLedger")

    accounts = sorted(ledger.balances().items())
    allowances = sorted(ledger.allowances().items())
    return {
        "registry": _bytes_to_hex(registry.address),
        "timestamp": registry.clock.now(),
        "next_order_id": registry.next_order_id,
        "accounts": [
            {"address": _bytes_to_hex(addr), "balance": balance}
            for addr, balance in accounts
        ],
        "allowances": [
            {"owner": _bytes_to_hex(owner), "spender": _bytes_to_hex(spender), "amount": amount}
            for (owner, spender), amount in allowances
        ],
        "orders": [order_to_json(o) for o in registry.orders()],
    }


def state_from_json(data: dict[str, Any]) -> OrderRegistry:
    ledger = InMemoryLedger()
    for a in data.get("accounts", []):
        if a.get("balance", 0):
            ledger.mint(_hex_to_bytes(a["address"]), a["balance"])
    for a in data.get("allowances", []):
        ledger.approve(_hex_to_bytes(a["owner"]), _hex_to_bytes(a["spender"]), a["amount"])

    return OrderRegistry(
        ledger,
        ManualClock(data.get("timestamp", 0)),
        _hex_to_bytes(data["registry"]),
        orders=[order_from_json(o) for o in data.get("orders", [])],
        next_order_id=data.get("next_order_id"),
    )


def call_to_json(call: Call) -> dict[str, Any]:
    result: dict[str, Any] = {
        "caller": _bytes_to_hex(call.caller),
        "operation": call.operation.value,
    }
    if call.order_id is not None:
        result["order_id"] = call.order_id
    if call.provider is not None:
        result["provider"] = _bytes_to_hex(call.provider)
    if call.amount is not None:
        result["amount"] = call.amount
    return result


def call_from_json(data: dict[str, Any]) -> Call:
    return Call(
        caller=_hex_to_bytes(data["caller"]),
        operation=Operation(data["operation"]),
        order_id=data.get("order_id"),
        provider=_hex_to_bytes(data["provider"]) if data.get("provider") is not None else None,
        amount=data.get("amount"),
    )
