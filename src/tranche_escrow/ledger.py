"""Ledger collaborator interface and an in-memory token ledger.

The registry never touches balances directly. It asks a ``Ledger`` to pull
funds into custody at order creation and to pay out of custody afterwards.
A ``False`` return is an ordinary refusal (insufficient balance or
allowance); ``LedgerError`` is reserved for malformed requests.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Protocol, Tuple

from .config import U256_MAX
from .errors import LedgerError
from .types import Address

logger = logging.getLogger(__name__)


class Ledger(Protocol):
    def transfer_from(self, spender: Address, owner: Address, recipient: Address, amount: int) -> bool:
        ...

    def transfer(self, sender: Address, recipient: Address, amount: int) -> bool:
        ...


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise LedgerError(f"amount must be int, got {type(amount).__name__}")
    if amount < 0 or amount > U256_MAX:
        raise LedgerError(f"amount out of range: {amount}")


class InMemoryLedger:
    """Single-token ledger with ERC-20 style balances and allowances."""

    def __init__(self) -> None:
        self._balances: Dict[Address, int] = {}
        self._allowances: Dict[Tuple[Address, Address], int] = {}
        self._total_supply = 0
        self._lock = threading.Lock()

    @property
    def total_supply(self) -> int:
        with self._lock:
            return self._total_supply

    def balance_of(self, account: Address) -> int:
        with self._lock:
            return self._balances.get(account, 0)

    def allowance(self, owner: Address, spender: Address) -> int:
        with self._lock:
            return self._allowances.get((owner, spender), 0)

    def balances(self) -> Dict[Address, int]:
        with self._lock:
            return dict(self._balances)

    def allowances(self) -> Dict[Tuple[Address, Address], int]:
        with self._lock:
            return dict(self._allowances)

    def mint(self, account: Address, amount: int) -> None:
        _check_amount(amount)
        with self._lock:
            if self._total_supply + amount > U256_MAX:
                raise LedgerError("total supply overflow")
            self._balances[account] = self._balances.get(account, 0) + amount
            self._total_supply += amount

    def approve(self, owner: Address, spender: Address, amount: int) -> bool:
        _check_amount(amount)
        with self._lock:
            self._allowances[(owner, spender)] = amount
        return True

    def transfer(self, sender: Address, recipient: Address, amount: int) -> bool:
        _check_amount(amount)
        with self._lock:
            return self._move(sender, recipient, amount)

    def transfer_from(self, spender: Address, owner: Address, recipient: Address, amount: int) -> bool:
        _check_amount(amount)
        with self._lock:
            allowed = self._allowances.get((owner, spender), 0)
            if allowed < amount:
                logger.debug(f"transfer_from refused: allowance {allowed} < {amount}")
                return False
            if not self._move(owner, recipient, amount):
                return False
            if allowed != U256_MAX:
                self._allowances[(owner, spender)] = allowed - amount
            return True

    def _move(self, sender: Address, recipient: Address, amount: int) -> bool:
        balance = self._balances.get(sender, 0)
        if balance < amount:
            logger.debug(f"transfer refused: balance {balance} < {amount}")
            return False
        self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        return True
