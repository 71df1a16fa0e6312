"""Canonical registry state digest (v1)."""
from __future__ import annotations

from typing import Any

from blake3 import blake3

from .config import ADDRESS_SIZE

_DIGEST_VERSION = b"tranche-escrow/state/v1"


def _hex_to_bytes(value: str | None) -> bytes:
    if value is None:
        return b""
    if not isinstance(value, str):
        raise TypeError("hex value must be string")
    v = value[2:] if value.startswith(("0x", "0X")) else value
    if v == "":
        return b""
    return bytes.fromhex(v)


def _u64_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u64 must be non-negative")
    return int(value).to_bytes(8, "big", signed=False)


def _u256_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u256 must be non-negative")
    return int(value).to_bytes(32, "big", signed=False)


def _address(value: str) -> bytes:
    addr = _hex_to_bytes(value)
    if len(addr) != ADDRESS_SIZE:
        raise ValueError(f"address must be {ADDRESS_SIZE} bytes, got {len(addr)}")
    return addr


def compute_state_digest(state: dict[str, Any]) -> str:
    """Compute state digest v1 from a registry snapshot.

    Fields are encoded in canonical order and hashed with BLAKE3-256:
    timestamp, next order id, ledger accounts sorted by address, then orders
    sorted by id. Allowances and the event log are not part of the digest.
    """
    buf = bytearray(_DIGEST_VERSION)
    buf += _u64_be(int(state.get("timestamp", 0)))
    buf += _u64_be(int(state.get("next_order_id", 1)))

    accounts = sorted(
        ((_address(acc["address"]), int(acc.get("balance", 0))) for acc in state.get("accounts", [])),
        key=lambda x: x[0],
    )
    buf += _u64_be(len(accounts))
    for addr, balance in accounts:
        buf += addr
        buf += _u256_be(balance)

    orders = sorted(state.get("orders", []), key=lambda o: int(o["id"]))
    buf += _u64_be(len(orders))
    for order in orders:
        buf += _u64_be(int(order["id"]))
        buf += _address(order["customer"])
        buf += _address(order["provider"])
        for field in ("total_amount", "first_payment", "second_payment"):
            buf += _u256_be(int(order[field]))
        buf += bytes([int(order["status"])])
        buf += _u64_be(int(order["deadline"]))
        buf += _u64_be(int(order.get("created_at", 0)))
        flags = int(bool(order.get("first_payment_released"))) | (int(bool(order.get("second_payment_released"))) << 1)
        buf += bytes([flags])

    return blake3(buf).hexdigest()
