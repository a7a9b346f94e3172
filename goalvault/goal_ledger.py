"""
goal_ledger.py - Goal-Dated Savings with an Early Withdrawal Penalty

The GoalSavingsLedger wraps a ShareVault position with a goal date. Each
account holds at most one deposit. Withdrawing on or after the goal date pays
out the full current value; withdrawing earlier forfeits half of the accrued
yield to the treasury.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES:
   - UserDeposit: one account's position (shares, principal, dates)
   - WithdrawalQuote: everything a withdrawal at a given instant would do
   - UserInfo / WithdrawalPreview: read-only views returned to callers

2. PURE CALCULATION FUNCTION:
   - calculate_withdrawal(principal, current_value, goal_date, now)
   - Shared by withdraw(), get_user_info() and preview_withdrawal(), so a
     preview always equals the withdrawal made at the same instant

3. STATEFUL LEDGER (GoalSavingsLedger):
   - deposit() / withdraw() mutate under one lock, all-or-nothing
   - The deposit record is deleted BEFORE any external call (vault redeem,
     asset push), so a callback can never observe or reuse it

Key Formulas:
    yield = max(current_value - principal, 0)
    is_early = now < goal_date
    penalty = yield // 2 if is_early and yield > 0 else 0
    user_receives = principal + (yield - penalty) if penalised else current_value

State machine per account:
    NoDeposit --deposit()--> Active --withdraw()--> NoDeposit
"""

from __future__ import annotations
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .core import (
    # Types
    AssetTransferPort, LogicalClock, SharePricingPort,
    DepositRecorded, OwnershipTransferred, PenaltyCollected, TreasuryUpdated,
    WithdrawalCompleted,
    # Constants
    EARLY_WITHDRAWAL_PENALTY_DIVISOR, EPOCH, REDEEM_TOLERANCE,
    # Exceptions
    DuplicateActiveDeposit, GoalDateNotInFuture, NoActiveDeposit, Unauthorized,
    ValueMismatchOnRedeem,
    # Helpers
    atomic, checked_add, checked_sub, filter_events, non_reentrant,
    require_address, require_amount,
)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class UserDeposit:
    """
    One account's goal deposit.

    Created by deposit(), never modified, removed by withdraw().
    """
    shares: int              # Vault shares held by the ledger for this account
    principal: int           # Assets deposited
    goal_date: datetime      # No penalty from this instant on
    deposit_date: datetime
    exists: bool = True


@dataclass(frozen=True, slots=True)
class WithdrawalQuote:
    """
    Result of calculate_withdrawal(): the full split of a position's value.

    user_receives + penalty == current_value always holds.
    """
    principal: int
    current_value: int
    yield_amount: int
    is_early: bool
    penalty: int
    user_receives: int


@dataclass(frozen=True, slots=True)
class UserInfo:
    """Read-only summary of an account's position. All zeros when there is none."""
    principal: int
    current_value: int
    yield_amount: int
    goal_date: datetime
    is_early: bool
    potential_penalty: int

    @classmethod
    def empty(cls) -> UserInfo:
        return cls(0, 0, 0, EPOCH, False, 0)

    def as_tuple(self) -> tuple:
        return (self.principal, self.current_value, self.yield_amount,
                self.goal_date, self.is_early, self.potential_penalty)


@dataclass(frozen=True, slots=True)
class WithdrawalPreview:
    user_will_receive: int
    penalty_amount: int


# ============================================================================
# PURE CALCULATION
# ============================================================================

def calculate_withdrawal(
    principal: int,
    current_value: int,
    goal_date: datetime,
    now: datetime,
) -> WithdrawalQuote:
    """
    Split a position's current value between the depositor and the treasury.

    PURE FUNCTION - All inputs explicit, no hidden state.

    An odd yield leaves the extra unit with the depositor (floor division).
    A position worth less than its principal has no yield and no penalty;
    the depositor receives the current value.

    Args:
        principal: Assets originally deposited
        current_value: What the position's shares convert to right now
        goal_date: Maturity of the deposit
        now: Instant of the (real or hypothetical) withdrawal

    Returns:
        WithdrawalQuote with yield, penalty and payout

    Example:
        q = calculate_withdrawal(1_000_000_000, 1_000_000_570,
                                 datetime(2026, 1, 1), datetime(2025, 6, 1))
        q.penalty        # 285
        q.user_receives  # 1_000_000_285
    """
    yield_amount = current_value - principal if current_value > principal else 0
    is_early = now < goal_date
    if is_early and yield_amount > 0:
        penalty = yield_amount // EARLY_WITHDRAWAL_PENALTY_DIVISOR
        user_receives = checked_add(principal, yield_amount - penalty)
    else:
        penalty = 0
        user_receives = current_value
    return WithdrawalQuote(
        principal=principal,
        current_value=current_value,
        yield_amount=yield_amount,
        is_early=is_early,
        penalty=penalty,
        user_receives=user_receives,
    )


def _is_aware(moment: datetime) -> bool:
    return moment.tzinfo is not None and moment.utcoffset() is not None


# ============================================================================
# LEDGER
# ============================================================================

class GoalSavingsLedger:
    """
    Goal-dated savings accounts on top of a share vault.

    The ledger's address (its asset port's custody holder) owns every vault
    share; per-account ownership lives in the deposit records. Assets flow:

        deposit:  account --pull--> ledger --vault.deposit--> vault
        withdraw: vault --redeem--> ledger --push--> account (+ treasury)

    Thread Safety:
        Every public operation and read takes the ledger's lock. deposit()
        and withdraw() also hold the vault lock and the asset book lock, in
        that order, until they commit or roll back. Operations reject
        reentry from a port callback with ReentrantCall.

    Example:
        ledger = GoalSavingsLedger(
            asset_port=BookTransferPort(book, "goal_ledger"),
            vault=vault,
            treasury="treasury",
            owner="admin",
            clock=clock,
        )
        book.approve("alice", ledger.address, 1_000_000_000)
        ledger.deposit("alice", 1_000_000_000, clock.current_time + timedelta(days=365))
        ...
        received = ledger.withdraw("alice")
    """

    def __init__(
        self,
        asset_port: AssetTransferPort,
        vault: SharePricingPort,
        treasury: str,
        owner: str,
        clock: LogicalClock,
        redeem_tolerance: int = REDEEM_TOLERANCE,
        verbose: bool = False,
    ):
        """
        Create a ledger with no deposits.

        Args:
            asset_port: Moves the asset in and out of the ledger's custody
            vault: Share vault the assets are forwarded into
            treasury: Receiver of early-withdrawal penalties
            owner: Administrator allowed to change treasury and ownership
            clock: Shared logical clock
            redeem_tolerance: Largest accepted redemption shortfall, in smallest units
            verbose: Print each applied or rejected operation

        Raises:
            InvalidAddress: If treasury or owner is null
        """
        self._port = asset_port
        self._vault = vault
        self._treasury = require_address(treasury, "treasury")
        self._owner = require_address(owner, "owner")
        self.clock = clock
        self.redeem_tolerance = redeem_tolerance
        self.verbose = verbose
        self.deposits: Dict[str, UserDeposit] = {}
        self.events: List[Any] = []
        self._lock = threading.RLock()
        self._entered = False

    # ========================================================================
    # READ-ONLY
    # ========================================================================

    @property
    def address(self) -> str:
        return self._port.address

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def vault_address(self) -> str:
        return self._vault.address

    @property
    def treasury(self) -> str:
        return self._treasury

    @property
    def owner(self) -> str:
        return self._owner

    def has_active_deposit(self, account: str) -> bool:
        with self._lock:
            record = self.deposits.get(account)
            return record is not None and record.exists

    def get_deposit(self, account: str) -> Optional[UserDeposit]:
        with self._lock:
            return self.deposits.get(account)

    def active_accounts(self) -> List[str]:
        with self._lock:
            return sorted(a for a, d in self.deposits.items() if d.exists)

    def total_principal(self) -> int:
        with self._lock:
            return sum(d.principal for d in self.deposits.values() if d.exists)

    def quote_withdrawal(self, account: str) -> Optional[WithdrawalQuote]:
        """What a withdrawal by account would do right now, or None without a deposit."""
        with self._lock:
            record = self.deposits.get(account)
            if record is None or not record.exists:
                return None
            current_value = self._vault.convert_to_assets(record.shares)
            return calculate_withdrawal(
                record.principal, current_value, record.goal_date, self.clock.current_time
            )

    def get_user_info(self, account: str) -> UserInfo:
        """
        Summarise account's position without changing anything.

        Returns:
            UserInfo with principal, current value, yield, goal date, whether a
            withdrawal now would be early, and the penalty it would incur.
            All zeros / False / EPOCH when the account has no active deposit.
        """
        with self._lock:
            quote = self.quote_withdrawal(account)
            if quote is None:
                return UserInfo.empty()
            return UserInfo(
                principal=quote.principal,
                current_value=quote.current_value,
                yield_amount=quote.yield_amount,
                goal_date=self.deposits[account].goal_date,
                is_early=quote.is_early,
                potential_penalty=quote.penalty,
            )

    def preview_withdrawal(self, account: str) -> WithdrawalPreview:
        """Exactly what withdraw() would pay account and the treasury at this instant."""
        quote = self.quote_withdrawal(account)
        if quote is None:
            return WithdrawalPreview(0, 0)
        return WithdrawalPreview(quote.user_receives, quote.penalty)

    def events_of(self, kind: type) -> List[Any]:
        return filter_events(self.events, kind)

    # ========================================================================
    # DEPOSIT / WITHDRAW
    # ========================================================================

    @non_reentrant
    def deposit(self, caller: str, amount: int, goal_date: datetime) -> int:
        """
        Lock amount until goal_date.

        The caller must have approved the ledger's address for amount on the
        asset. The assets are forwarded into the vault; the ledger keeps the
        shares on the caller's behalf.

        Args:
            caller: Depositing account
            amount: Assets to deposit, in smallest units
            goal_date: Maturity; must be strictly after now

        Returns:
            Vault shares recorded for the caller

        Raises:
            InvalidAmount: If amount is not a positive integer
            GoalDateNotInFuture: If goal_date is not a datetime, differs from
                the clock in timezone awareness, or is not after now
            DuplicateActiveDeposit: If caller already has an active deposit
            InsufficientBalance, InsufficientAllowance: From the asset port
            FirstDepositBelowFloor, ZeroSharesOrAssetsResult: From the vault
        """
        require_amount(amount, "amount")
        now = self.clock.current_time
        if not isinstance(goal_date, datetime):
            self._reject(f"goal date {goal_date!r} is not a datetime")
            raise GoalDateNotInFuture(
                f"Goal date must be a datetime, got {type(goal_date).__name__}"
            )
        if _is_aware(goal_date) != _is_aware(now):
            self._reject(f"goal date {goal_date} and clock {now} differ in timezone awareness")
            raise GoalDateNotInFuture(
                f"Goal date {goal_date} must be "
                f"{'timezone-aware' if _is_aware(now) else 'naive'} like the clock ({now})"
            )
        if goal_date <= now:
            self._reject(f"goal date {goal_date} not after {now}")
            raise GoalDateNotInFuture(f"Goal date {goal_date} must be after {now}")
        if self.has_active_deposit(caller):
            self._reject(f"{caller} already has an active deposit")
            raise DuplicateActiveDeposit(f"{caller} already has an active deposit")

        with atomic(self, self._vault, self._port):
            self._port.pull(caller, amount)
            self._port.approve(self._vault.address, amount)
            shares = self._vault.deposit(self.address, amount, self.address)
            self.deposits[caller] = UserDeposit(
                shares=shares,
                principal=amount,
                goal_date=goal_date,
                deposit_date=now,
            )
            self._emit(DepositRecorded(caller, amount, shares, goal_date, now, now))
        return shares

    @non_reentrant
    def withdraw(self, caller: str) -> int:
        """
        Close caller's deposit and pay it out.

        Before the goal date half of any yield (rounded down) goes to the
        treasury. The record is deleted before the vault and asset calls.

        Returns:
            Total assets paid to caller

        Raises:
            NoActiveDeposit: If caller has no active deposit
            ValueMismatchOnRedeem: If the vault pays out more than
                redeem_tolerance less than the snapshot value
            InsufficientBalance: From the asset port (e.g. unfunded yield)
        """
        record = self.deposits.get(caller)
        if record is None or not record.exists:
            self._reject(f"{caller} has no active deposit")
            raise NoActiveDeposit(f"{caller} has no active deposit")

        now = self.clock.current_time
        with atomic(self, self._vault, self._port):
            current_value = self._vault.convert_to_assets(record.shares)
            quote = calculate_withdrawal(record.principal, current_value, record.goal_date, now)

            del self.deposits[caller]

            redeemed = self._vault.redeem(self.address, record.shares, self.address, self.address)
            if redeemed + self.redeem_tolerance < quote.current_value:
                self._reject(f"redeemed {redeemed} vs expected {quote.current_value}")
                raise ValueMismatchOnRedeem(
                    f"Vault returned {redeemed}, expected {quote.current_value} "
                    f"(tolerance {self.redeem_tolerance})"
                )
            # Any drift within tolerance comes out of the depositor's share.
            total_received = checked_sub(redeemed, quote.penalty)

            if quote.penalty > 0:
                self._port.push(self._treasury, quote.penalty)
                self._emit(PenaltyCollected(caller, self._treasury, quote.penalty, now))
            self._port.push(caller, total_received)
            self._emit(WithdrawalCompleted(
                account=caller,
                principal=quote.principal,
                yield_amount=quote.yield_amount,
                penalty=quote.penalty,
                total_received=total_received,
                is_early=quote.is_early,
                timestamp=now,
            ))
        return total_received

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    @non_reentrant
    def update_treasury(self, caller: str, new_treasury: str) -> None:
        """
        Raises:
            Unauthorized: If caller is not the owner
            InvalidAddress: If new_treasury is null
        """
        self._require_owner(caller)
        require_address(new_treasury, "treasury")
        previous = self._treasury
        self._treasury = new_treasury
        self._emit(TreasuryUpdated(previous, new_treasury, self.clock.current_time))

    @non_reentrant
    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        """
        Raises:
            Unauthorized: If caller is not the owner
            InvalidAddress: If new_owner is null
        """
        self._require_owner(caller)
        require_address(new_owner, "owner")
        previous = self._owner
        self._owner = new_owner
        self._emit(OwnershipTransferred(previous, new_owner, self.clock.current_time))

    def _require_owner(self, caller: str) -> None:
        if caller != self._owner:
            self._reject(f"{caller} is not the owner")
            raise Unauthorized(f"{caller} is not the owner")

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _emit(self, event: Any) -> None:
        self.events.append(event)
        if self.verbose:
            print(f"✓ {event}")

    def _reject(self, reason: str) -> None:
        if self.verbose:
            print(f"✗ REJECTED: {reason}")

    def snapshot(self) -> Dict[str, Any]:
        return {
            'deposits': dict(self.deposits),
            'treasury': self._treasury,
            'owner': self._owner,
            'events_length': len(self.events),
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self.deposits = dict(state['deposits'])
        self._treasury = state['treasury']
        self._owner = state['owner']
        del self.events[state['events_length']:]

    def __repr__(self) -> str:
        return (f"GoalSavingsLedger(active={len(self.deposits)}, "
                f"treasury={self._treasury}, owner={self._owner})")
