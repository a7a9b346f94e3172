"""
Core types and pure functions for the goal savings vault.

This module provides the foundational pieces shared by every component:
1. Constants: address sentinels, accrual constants, seed/floor amounts
2. Amount helpers: validation and human <-> smallest-unit conversion
3. Checked arithmetic: uint256-bounded integer math with explicit rounding
4. LogicalClock: the single source of "now"
5. Protocols: AssetTransferPort, SharePricingPort, Transactional, Guarded
6. Exceptions: VaultError and the domain-specific error types
7. Event records: immutable audit entries emitted by the components
8. atomic() and non_reentrant: all-or-nothing execution and reentry guard

All amounts are plain Python ints in the asset's smallest unit. Functions in
this module never touch component state.
"""

from __future__ import annotations
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_DOWN
from enum import Enum
from functools import wraps
from typing import Any, Iterator, List, Optional, Protocol, Tuple, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Every stored amount, share count and intermediate result must fit in a uint256.
MAX_UINT256 = 2**256 - 1

# Null destination. Empty strings and None are treated the same way.
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Unreachable holder of the seed shares minted on a vault's first deposit.
DEAD_ADDRESS = "0x000000000000000000000000000000000000dEaD"

SECONDS_PER_YEAR = 365 * 24 * 60 * 60
BPS_DENOMINATOR = 10_000

# Seed shares locked to DEAD_ADDRESS on first deposit. Also the minimum
# first deposit.
DEAD_SHARES = 1_000

# Largest shortfall (smallest units) tolerated between a previewed value and
# what a redemption actually returns.
REDEEM_TOLERANCE = 10

# Early withdrawal forfeits yield // 2.
EARLY_WITHDRAWAL_PENALTY_DIVISOR = 2

DEFAULT_ANNUAL_YIELD_BPS = 500

USDC_DECIMALS = 6

# Zero timestamp, reported as the goal date of an account with no deposit.
EPOCH = datetime(1970, 1, 1)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class VaultError(Exception):
    """Base exception for all vault and goal ledger errors."""
    pass


class InvalidAmount(VaultError):
    """Raised when an amount is zero, negative, non-integral or out of range."""
    pass


class InvalidAddress(VaultError):
    """Raised when a receiver, owner, treasury or admin address is null."""
    pass


class GoalDateNotInFuture(VaultError):
    """Raised when a deposit's goal date is not strictly after now."""
    pass


class DuplicateActiveDeposit(VaultError):
    """Raised when an account with an active deposit tries to deposit again."""
    pass


class NoActiveDeposit(VaultError):
    """Raised when an account without an active deposit tries to withdraw."""
    pass


class InsufficientBalance(VaultError):
    """Raised when a holder's asset or share balance does not cover a transfer."""
    pass


class InsufficientAllowance(VaultError):
    """Raised when a spender's allowance does not cover a pull or redemption."""
    pass


class ZeroSharesOrAssetsResult(VaultError):
    """Raised when a conversion collapses to zero shares or zero assets."""
    pass


class FirstDepositBelowFloor(VaultError):
    """Raised when a vault's first deposit cannot fund the seed shares."""
    pass


class ValueMismatchOnRedeem(VaultError):
    """Raised when a redemption returns less than the snapshot value beyond tolerance."""
    pass


class Unauthorized(VaultError):
    """Raised when a non-admin calls an admin operation."""
    pass


class ArithmeticOverflow(VaultError):
    """Raised when checked arithmetic leaves the uint256 range."""
    pass


class ReentrantCall(VaultError):
    """Raised when a guarded operation is re-entered from an external callback."""
    pass


# ============================================================================
# AMOUNT HELPERS
# ============================================================================

def require_amount(value: Any, name: str = "amount") -> int:
    """
    Validate a positive uint256 amount.

    Raises:
        InvalidAmount: If value is not an int, is a bool, is <= 0 or exceeds MAX_UINT256.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer amount, got {type(value).__name__}")
    if value <= 0:
        raise InvalidAmount(f"{name} must be positive, got {value}")
    if value > MAX_UINT256:
        raise InvalidAmount(f"{name} exceeds uint256 range")
    return value


def require_uint(value: Any, name: str = "value") -> int:
    """Validate an integer in [0, MAX_UINT256]. Zero is allowed."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {type(value).__name__}")
    if not 0 <= value <= MAX_UINT256:
        raise InvalidAmount(f"{name} must be in [0, MAX_UINT256], got {value}")
    return value


def is_null_address(address: Any) -> bool:
    """Return True for None, blank strings and ZERO_ADDRESS."""
    if address is None:
        return True
    if not isinstance(address, str) or not address.strip():
        return True
    return address.lower() == ZERO_ADDRESS


def require_address(address: Any, name: str = "address") -> str:
    """
    Validate a non-null address.

    Raises:
        InvalidAddress: If address is null.
    """
    if is_null_address(address):
        raise InvalidAddress(f"{name} cannot be the zero address, got {address!r}")
    return address


def to_units(amount: Any, decimals: int = USDC_DECIMALS) -> int:
    """
    Convert a human amount (e.g. Decimal("12.5")) to smallest units, rounding down.

    Example:
        to_units(Decimal("7400"))  # 7_400_000_000
    """
    if isinstance(amount, float):
        amount = Decimal(str(amount))
    value = Decimal(amount) * (Decimal(10) ** decimals)
    return int(value.to_integral_value(rounding=ROUND_DOWN))


def from_units(units: int, decimals: int = USDC_DECIMALS) -> Decimal:
    """Convert smallest units back to a human Decimal amount."""
    return Decimal(units) / (Decimal(10) ** decimals)


# ============================================================================
# CHECKED ARITHMETIC
# ============================================================================

class Rounding(Enum):
    """
    Rounding direction for mul_div.

    FLOOR: round toward zero, used whenever the pool pays out or mints.
    CEIL: round up, used when computing a required input for a target output.
    """
    FLOOR = "floor"
    CEIL = "ceil"


def _check_range(value: int, operation: str) -> int:
    if value < 0:
        raise ArithmeticOverflow(f"{operation} underflow: {value}")
    if value > MAX_UINT256:
        raise ArithmeticOverflow(f"{operation} overflow")
    return value


def checked_add(a: int, b: int) -> int:
    return _check_range(a + b, "add")


def checked_sub(a: int, b: int) -> int:
    return _check_range(a - b, "sub")


def checked_mul(a: int, b: int) -> int:
    return _check_range(a * b, "mul")


def mul_div(x: int, y: int, denominator: int, rounding: Rounding = Rounding.FLOOR) -> int:
    """
    Compute x * y / denominator with the requested rounding.

    The intermediate product is exact (Python ints do not wrap); only the
    final result has to fit in a uint256.

    Raises:
        ArithmeticOverflow: On a zero denominator, negative operands or an
            out-of-range result.
    """
    if denominator == 0:
        raise ArithmeticOverflow("mul_div by zero")
    if x < 0 or y < 0 or denominator < 0:
        raise ArithmeticOverflow(f"mul_div operands must be unsigned: {x}, {y}, {denominator}")
    quotient, remainder = divmod(x * y, denominator)
    if rounding is Rounding.CEIL and remainder:
        quotient += 1
    return _check_range(quotient, "mul_div")


# ============================================================================
# CLOCK
# ============================================================================

class LogicalClock:
    """
    Shared logical time for a vault, its goal ledger and their tests.

    Time can only move forward.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._current_time: datetime = initial_time or EPOCH

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def advance_seconds(self, seconds: int) -> datetime:
        self.advance_time(self._current_time + timedelta(seconds=seconds))
        return self._current_time


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end, never negative."""
    return max(int((end - start).total_seconds()), 0)


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class Transactional(Protocol):
    """
    State that can be captured and put back.

    Components implementing this protocol take part in atomic() rollback.
    """

    def snapshot(self) -> Any:
        ...

    def restore(self, state: Any) -> None:
        ...


@runtime_checkable
class Guarded(Protocol):
    """
    Component whose state is guarded by a reentrant lock.

    atomic() holds the lock of every guarded participant for the whole block,
    so no other thread can commit into state that may later be restored.
    """

    @property
    def lock(self) -> Any:
        ...


@runtime_checkable
class AssetTransferPort(Protocol):
    """
    Narrow capability for moving the pooled asset in and out of custody.

    The port acts on behalf of one custody holder (its address). Every
    operation either completes or raises InsufficientBalance /
    InsufficientAllowance; none fails silently.
    """

    @property
    def address(self) -> str:
        """Custody holder the port acts for."""
        ...

    def pull(self, source: str, amount: int) -> None:
        """Move amount from source into custody, spending source's allowance to the holder."""
        ...

    def push(self, dest: str, amount: int) -> None:
        """Move amount from custody to dest."""
        ...

    def approve(self, spender: str, amount: int) -> None:
        """Allow spender to pull up to amount out of custody."""
        ...


@runtime_checkable
class SharePricingPort(Protocol):
    """
    What the goal ledger needs from a share vault.

    ShareVault implements it; tests inject fakes with fixed prices.
    """

    @property
    def address(self) -> str:
        ...

    def convert_to_shares(self, assets: int) -> int:
        ...

    def convert_to_assets(self, shares: int) -> int:
        ...

    def deposit(self, caller: str, assets: int, receiver: str) -> int:
        ...

    def redeem(self, caller: str, shares: int, receiver: str, owner: str) -> int:
        ...


# ============================================================================
# EVENT RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class DepositRecorded:
    account: str
    amount: int
    shares: int
    goal_date: datetime
    deposit_date: datetime
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class WithdrawalCompleted:
    account: str
    principal: int
    yield_amount: int
    penalty: int
    total_received: int
    is_early: bool
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class PenaltyCollected:
    account: str
    treasury: str
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class TreasuryUpdated:
    previous_treasury: str
    new_treasury: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class OwnershipTransferred:
    previous_owner: str
    new_owner: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class VaultDeposit:
    sender: str
    owner: str
    assets: int
    shares: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class VaultWithdraw:
    sender: str
    receiver: str
    owner: str
    assets: int
    shares: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class AssetTransfer:
    source: str
    dest: str
    amount: int
    timestamp: datetime

    def __repr__(self) -> str:
        return f"AssetTransfer({self.amount}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class AssetApproval:
    owner: str
    spender: str
    amount: int
    timestamp: datetime


def filter_events(events: List[Any], kind: type) -> List[Any]:
    """Return the events of one record type, in emission order."""
    return [e for e in events if isinstance(e, kind)]


# ============================================================================
# ATOMICITY AND REENTRANCY
# ============================================================================

@contextmanager
def atomic(*participants: Any) -> Iterator[None]:
    """
    Run a block all-or-nothing across several components.

    The lock of every Guarded participant is acquired in argument order and
    held until the block exits. Every participant implementing Transactional
    is then snapshotted. If the block raises, each one is restored (last
    first) and the exception propagates unchanged. Participants that cannot
    lock or snapshot are skipped.

    Lock order is ledger -> vault -> asset book. Callers pass participants in
    that order so two operations never wait on each other's locks.

    Example:
        with atomic(self, self._port):
            self._port.pull(caller, amount)
            self._credit(receiver, shares)
    """
    with ExitStack() as held:
        for participant in participants:
            if isinstance(participant, Guarded):
                held.enter_context(participant.lock)
        saved: List[Tuple[Transactional, Any]] = [
            (p, p.snapshot()) for p in participants if isinstance(p, Transactional)
        ]
        try:
            yield
        except Exception:
            for participant, state in reversed(saved):
                participant.restore(state)
            raise


def non_reentrant(method):
    """
    Serialise a public operation and reject reentry.

    The instance must provide `_lock` (a threading.RLock) and `_entered`.
    Other threads wait on the lock; the same thread re-entering through an
    external callback gets ReentrantCall.
    """
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            if self._entered:
                raise ReentrantCall(
                    f"{type(self).__name__}.{method.__name__} called while another operation is in progress"
                )
            self._entered = True
            try:
                return method(self, *args, **kwargs)
            finally:
                self._entered = False

    return wrapper
