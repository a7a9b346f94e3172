"""
goalvault - Goal-Dated Savings on a Share-Based Yield Vault

Lock an asset balance until a goal date, earn yield through an appreciating
vault share price, and forfeit half the yield to a treasury if you leave early.

Usage:
    from datetime import datetime, timedelta
    from goalvault import (
        LogicalClock, AssetBook, BookTransferPort, ShareVault, GoalSavingsLedger,
        to_units,
    )

    clock = LogicalClock(datetime(2025, 1, 1))
    book = AssetBook("USDC", "USD Coin", clock)
    vault = ShareVault(BookTransferPort(book, "share_vault"), clock,
                       annual_yield_rate_bps=500)
    ledger = GoalSavingsLedger(BookTransferPort(book, "goal_ledger"), vault,
                               treasury="treasury", owner="admin", clock=clock)

    book.mint("alice", to_units(1000))
    book.approve("alice", ledger.address, to_units(1000))
    ledger.deposit("alice", to_units(1000), clock.current_time + timedelta(days=360))

    clock.advance_seconds(90 * 24 * 3600)
    ledger.preview_withdrawal("alice")   # (user_will_receive, penalty_amount)
"""

# Core types
from .core import (
    # Constants
    MAX_UINT256,
    ZERO_ADDRESS,
    DEAD_ADDRESS,
    SECONDS_PER_YEAR,
    BPS_DENOMINATOR,
    DEAD_SHARES,
    REDEEM_TOLERANCE,
    EARLY_WITHDRAWAL_PENALTY_DIVISOR,
    DEFAULT_ANNUAL_YIELD_BPS,
    USDC_DECIMALS,
    EPOCH,
    # Protocols
    AssetTransferPort,
    SharePricingPort,
    Transactional,
    Guarded,
    # Clock
    LogicalClock,
    # Exceptions
    VaultError,
    InvalidAmount,
    InvalidAddress,
    GoalDateNotInFuture,
    DuplicateActiveDeposit,
    NoActiveDeposit,
    InsufficientBalance,
    InsufficientAllowance,
    ZeroSharesOrAssetsResult,
    FirstDepositBelowFloor,
    ValueMismatchOnRedeem,
    Unauthorized,
    ArithmeticOverflow,
    ReentrantCall,
    # Events
    DepositRecorded,
    WithdrawalCompleted,
    PenaltyCollected,
    TreasuryUpdated,
    OwnershipTransferred,
    VaultDeposit,
    VaultWithdraw,
    AssetTransfer,
    AssetApproval,
    # Helpers
    Rounding,
    mul_div,
    checked_add,
    checked_sub,
    checked_mul,
    to_units,
    from_units,
    atomic,
    non_reentrant,
)

# Asset book
from .asset_book import AssetBook, BookTransferPort

# Share vault
from .share_vault import ShareVault

# Goal ledger
from .goal_ledger import (
    GoalSavingsLedger,
    UserDeposit,
    UserInfo,
    WithdrawalPreview,
    WithdrawalQuote,
    calculate_withdrawal,
)

# Planning
from .planning import (
    GOAL_HORIZON_MONTHS,
    GoalProjection,
    goal_date_from_months,
    project_values,
    project_goal_outcomes,
)

__all__ = [
    # Constants
    'MAX_UINT256', 'ZERO_ADDRESS', 'DEAD_ADDRESS', 'SECONDS_PER_YEAR', 'BPS_DENOMINATOR',
    'DEAD_SHARES', 'REDEEM_TOLERANCE', 'EARLY_WITHDRAWAL_PENALTY_DIVISOR',
    'DEFAULT_ANNUAL_YIELD_BPS', 'USDC_DECIMALS', 'EPOCH',
    # Protocols
    'AssetTransferPort', 'SharePricingPort', 'Transactional', 'Guarded',
    # Clock
    'LogicalClock',
    # Exceptions
    'VaultError', 'InvalidAmount', 'InvalidAddress', 'GoalDateNotInFuture',
    'DuplicateActiveDeposit', 'NoActiveDeposit', 'InsufficientBalance',
    'InsufficientAllowance', 'ZeroSharesOrAssetsResult', 'FirstDepositBelowFloor',
    'ValueMismatchOnRedeem', 'Unauthorized', 'ArithmeticOverflow', 'ReentrantCall',
    # Events
    'DepositRecorded', 'WithdrawalCompleted', 'PenaltyCollected', 'TreasuryUpdated',
    'OwnershipTransferred', 'VaultDeposit', 'VaultWithdraw', 'AssetTransfer', 'AssetApproval',
    # Helpers
    'Rounding', 'mul_div', 'checked_add', 'checked_sub', 'checked_mul',
    'to_units', 'from_units', 'atomic', 'non_reentrant',
    # Components
    'AssetBook', 'BookTransferPort', 'ShareVault',
    'GoalSavingsLedger', 'UserDeposit', 'UserInfo', 'WithdrawalPreview', 'WithdrawalQuote',
    'calculate_withdrawal',
    # Planning
    'GOAL_HORIZON_MONTHS', 'GoalProjection', 'goal_date_from_months',
    'project_values', 'project_goal_outcomes',
]

__version__ = '1.0.0'
