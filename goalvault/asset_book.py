"""
asset_book.py - Balance Book for the Pooled Asset

The AssetBook tracks a single fungible asset (a USDC-style stable token):
who holds how much, who may spend whose balance, and the audit trail of every
transfer and approval. It is the concrete collaborator behind the
AssetTransferPort used by the vault and the goal ledger.

Key responsibilities:
    - Holds balances and allowances for one asset
    - Moves balances atomically (a failed transfer changes nothing)
    - Fails loudly with InsufficientBalance / InsufficientAllowance
    - Always logs - every transfer and approval is appended to transfer_log
    - Supports snapshot()/restore() so callers can roll back a whole operation

BookTransferPort adapts a book to the AssetTransferPort protocol for one
custody holder (the vault, the goal ledger).
"""

from __future__ import annotations
from collections import defaultdict
import threading
from typing import Any, Dict, List, Tuple

from .core import (
    # Types
    AssetApproval, AssetTransfer, LogicalClock,
    # Constants
    MAX_UINT256, USDC_DECIMALS, ZERO_ADDRESS,
    # Exceptions
    InsufficientAllowance, InsufficientBalance,
    # Helpers
    checked_add, checked_sub, from_units, require_address, require_amount, require_uint,
)


class AssetBook:
    """
    Balance and allowance book for one fungible asset.

    Amounts are ints in the asset's smallest unit (6 decimals for USDC).
    An allowance of MAX_UINT256 is treated as unlimited and never decremented.

    Thread Safety:
        Every mutation, snapshot() and restore() runs under the book's own
        RLock. atomic() holds that lock for a whole vault or ledger operation,
        so several ledgers can share one book and one treasury.

    Example:
        clock = LogicalClock()
        book = AssetBook("USDC", "USD Coin", clock)
        book.mint("alice", to_units(1000))
        book.approve("alice", "goal_ledger", to_units(1000))
        book.transfer_from("goal_ledger", "alice", "goal_ledger", to_units(250))
    """

    def __init__(
        self,
        symbol: str,
        name: str,
        clock: LogicalClock,
        decimals: int = USDC_DECIMALS,
        verbose: bool = False,
    ):
        """
        Create an empty book.

        Args:
            symbol: Asset ticker (e.g. "USDC")
            name: Human-readable name
            clock: Shared logical clock used to stamp log entries
            decimals: Decimal places of the smallest unit (default: 6)
            verbose: Print every transfer and approval (default: False)
        """
        self.symbol = symbol
        self.name = name
        self.decimals = decimals
        self.clock = clock
        self.verbose = verbose
        self.balances: Dict[str, int] = defaultdict(int)
        self.allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self._total_supply: int = 0
        self.transfer_log: List[Any] = []
        self._lock = threading.RLock()

    # ========================================================================
    # READ-ONLY
    # ========================================================================

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def balance_of(self, holder: str) -> int:
        return self.balances.get(holder, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def holders(self) -> Dict[str, int]:
        """Return all non-zero balances."""
        with self._lock:
            return {h: b for h, b in self.balances.items() if b}

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Check that the sum of all balances equals the issued supply.

        Transfers redistribute balances but never create or destroy them;
        only mint() changes the supply.

        Returns:
            Dict with keys:
            - 'valid': bool - True if the sum of balances equals total_supply
            - 'total_supply': int
            - 'sum_of_balances': int
            - 'difference': int
        """
        with self._lock:
            summed = sum(self.balances[h] for h in sorted(self.balances))
            supply = self._total_supply
        return {
            'valid': summed == supply,
            'total_supply': supply,
            'sum_of_balances': summed,
            'difference': summed - supply,
        }

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def mint(self, to: str, amount: int) -> None:
        """
        Issue new units to a holder.

        Used to fund accounts and yield reserves in tests and demos. Recorded
        in the log as a transfer from ZERO_ADDRESS.
        """
        require_address(to, "mint receiver")
        require_amount(amount)
        with self._lock:
            supply = checked_add(self._total_supply, amount)
            balance = checked_add(self.balances[to], amount)
            self._total_supply = supply
            self.balances[to] = balance
            self._log(AssetTransfer(ZERO_ADDRESS, to, amount, self.clock.current_time))

    def transfer(self, sender: str, to: str, amount: int) -> None:
        """
        Move amount from sender to to.

        Raises:
            InvalidAddress: If to is null
            InvalidAmount: If amount is not a positive integer
            InsufficientBalance: If sender holds less than amount
        """
        require_address(to, "transfer receiver")
        require_amount(amount)
        with self._lock:
            self._move(sender, to, amount)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Set spender's allowance over owner's balance. Zero revokes it."""
        require_address(spender, "spender")
        require_uint(amount, "allowance")
        with self._lock:
            self.allowances[(owner, spender)] = amount
            self._log(AssetApproval(owner, spender, amount, self.clock.current_time))

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        """
        Move amount from owner to to, spending spender's allowance.

        The allowance and balance are both checked before anything changes.

        Raises:
            InsufficientAllowance: If spender's allowance over owner is below amount
            InsufficientBalance: If owner holds less than amount
        """
        require_address(to, "transfer receiver")
        require_amount(amount)
        with self._lock:
            current = self.allowance(owner, spender)
            if current < amount:
                self._reject(f"allowance {owner}->{spender}: {current} < {amount}")
                raise InsufficientAllowance(
                    f"{spender} may spend {current} {self.symbol} of {owner}, needs {amount}"
                )
            self._move(owner, to, amount)
            if current != MAX_UINT256:
                self.allowances[(owner, spender)] = current - amount

    def _move(self, source: str, dest: str, amount: int) -> None:
        # Caller holds self._lock
        available = self.balance_of(source)
        if available < amount:
            self._reject(f"{source} {self.symbol}: {available} < {amount}")
            raise InsufficientBalance(
                f"{source} holds {available} {self.symbol}, needs {amount}"
            )
        self.balances[source] = checked_sub(available, amount)
        self.balances[dest] = checked_add(self.balances[dest], amount)
        self._log(AssetTransfer(source, dest, amount, self.clock.current_time))

    def _log(self, record: Any) -> None:
        # Audit trail is mandatory
        self.transfer_log.append(record)
        if self.verbose:
            if isinstance(record, AssetTransfer):
                print(f"✓ {self.symbol} {from_units(record.amount, self.decimals)}: "
                      f"{record.source} → {record.dest}")
            else:
                print(f"✓ {self.symbol} approve {record.owner} → {record.spender}: {record.amount}")

    def _reject(self, reason: str) -> None:
        if self.verbose:
            print(f"✗ REJECTED: {reason}")

    # ========================================================================
    # SNAPSHOT / RESTORE
    # ========================================================================

    def snapshot(self) -> Dict[str, Any]:
        """Capture balances, allowances, supply and log position."""
        with self._lock:
            return {
                'balances': dict(self.balances),
                'allowances': dict(self.allowances),
                'total_supply': self._total_supply,
                'log_length': len(self.transfer_log),
            }

    def restore(self, state: Dict[str, Any]) -> None:
        """Put the book back exactly as it was when state was captured."""
        with self._lock:
            self.balances = defaultdict(int, state['balances'])
            self.allowances = defaultdict(int, state['allowances'])
            self._total_supply = state['total_supply']
            del self.transfer_log[state['log_length']:]


class BookTransferPort:
    """
    AssetTransferPort backed by an AssetBook, acting for one custody holder.

    pull() spends the allowance the source granted to the holder; push() and
    approve() act on the holder's own balance.
    """

    def __init__(self, book: AssetBook, holder: str):
        self.book = book
        self._holder = require_address(holder, "custody holder")

    @property
    def address(self) -> str:
        return self._holder

    def pull(self, source: str, amount: int) -> None:
        self.book.transfer_from(self._holder, source, self._holder, amount)

    def push(self, dest: str, amount: int) -> None:
        self.book.transfer(self._holder, dest, amount)

    def approve(self, spender: str, amount: int) -> None:
        self.book.approve(self._holder, spender, amount)

    @property
    def lock(self) -> threading.RLock:
        return self.book.lock

    def balance(self) -> int:
        return self.book.balance_of(self._holder)

    def snapshot(self) -> Dict[str, Any]:
        return self.book.snapshot()

    def restore(self, state: Dict[str, Any]) -> None:
        self.book.restore(state)

    def __repr__(self) -> str:
        return f"BookTransferPort({self.book.symbol}, holder={self._holder})"
