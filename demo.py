#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Goal Savings Step by Step

A walk through the goal savings vault. Each step builds on the previous one.
Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation     - The asset book, the share vault, dead-share seeding
  4-5:  Yield          - Linear accrual and an appreciating share price
  6-8:  Goals          - Goal deposits, early-withdrawal penalties, previews
  9:    Safety         - Rejected operations change nothing
  10:   Planning       - Projected outcomes for each goal horizon

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from goalvault import (
    # Components
    LogicalClock, AssetBook, BookTransferPort, ShareVault, GoalSavingsLedger,
    # Constants
    DEAD_ADDRESS, DEAD_SHARES,
    # Exceptions
    VaultError,
    # Helpers
    to_units, from_units, project_goal_outcomes,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    annual_yield_bps: int = 500

    seed_deposit: Decimal = Decimal("1")
    yield_reserve: Decimal = Decimal("500")
    alice_deposit: Decimal = Decimal("1000")
    bob_deposit: Decimal = Decimal("2500")
    planning_amount: Decimal = Decimal("7400")


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def usdc(units: int) -> str:
    return f"{from_units(units):,.6f} USDC"


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_asset_book():
    """Create the clock and the asset book."""
    step_header(1, "The Asset Book",
        "Understand amounts as integers in the asset's smallest unit.")

    print("""
    Every amount is an int in 6-decimal USDC units: 1 USDC == 1_000_000.
    to_units() and from_units() convert between human and on-ledger amounts.
    """)

    clock = LogicalClock(CONFIG.start_time)
    book = AssetBook("USDC", "USD Coin", clock, verbose=True)

    print(">>> to_units(Decimal('1000'))")
    print(to_units(CONFIG.alice_deposit))
    print(">>> from_units(1_500_000)")
    print(from_units(1_500_000))
    return clock, book


def step_02_share_vault(clock: LogicalClock, book: AssetBook):
    """Create an empty share vault."""
    step_header(2, "The Share Vault",
        "A vault pools the asset and issues shares; an empty vault prices 1:1.")

    vault = ShareVault(
        BookTransferPort(book, "share_vault"), clock,
        annual_yield_rate_bps=CONFIG.annual_yield_bps, verbose=True,
    )
    print(f">>> vault = {vault!r}")
    print(f"convert_to_shares(1_000_000) = {vault.convert_to_shares(1_000_000)}")
    print(f"preview_deposit(5_000)       = {vault.preview_deposit(5_000)}  (seed shares come out first)")
    return vault


def step_03_seed(book: AssetBook, vault: ShareVault):
    """The first deposit locks DEAD_SHARES forever."""
    step_header(3, "Dead-Share Seeding",
        f"The first depositor donates {DEAD_SHARES} shares to an unspendable address.")

    amount = to_units(CONFIG.seed_deposit)
    book.mint("seeder", amount)
    book.approve("seeder", vault.address, amount)
    shares = vault.deposit("seeder", amount, "seeder")

    section_header("Result")
    print(f"seeder shares: {shares}")
    print(f"dead shares:   {vault.balance_of(DEAD_ADDRESS)}")
    print("""
    With shares already outstanding, nobody can donate assets to an empty pool
    and inflate the price of the very first share.
    """)

    book.mint(vault.address, to_units(CONFIG.yield_reserve))
    print(f"Yield reserve funded: {usdc(to_units(CONFIG.yield_reserve))}")


# ============================================================================
# PHASE 2: YIELD (Steps 4-5)
# ============================================================================

def step_04_accrual(clock: LogicalClock, vault: ShareVault):
    """Watch the share price grow."""
    step_header(4, "Linear Accrual",
        "Total assets grow linearly with time; so does the share price.")

    for label, delta in [("now", timedelta(0)), ("+1 day", timedelta(days=1)),
                         ("+30 days", timedelta(days=29))]:
        clock.advance_time(clock.current_time + delta)
        print(f"{label:>9}: total_assets={vault.total_assets():>10}  share_price={vault.share_price()}")


def step_05_rounding(vault: ShareVault):
    """Rounding always favours the pool."""
    step_header(5, "Rounding",
        "Deposits and redemptions round down; required inputs round up.")

    print(f"convert_to_shares(1)  = {vault.convert_to_shares(1)}")
    print(f"preview_withdraw(1)   = {vault.preview_withdraw(1)}")
    print(f"preview_mint(1)       = {vault.preview_mint(1)}")


# ============================================================================
# PHASE 3: GOALS (Steps 6-8)
# ============================================================================

def step_06_goal_deposit(clock, book, vault):
    """Alice and Bob lock funds until their goal dates."""
    step_header(6, "Goal Deposits",
        "Each account holds one goal deposit; the ledger holds the shares.")

    ledger = GoalSavingsLedger(
        asset_port=BookTransferPort(book, "goal_ledger"),
        vault=vault, treasury="treasury", owner="admin", clock=clock, verbose=True,
    )
    for who, amount, months in [("alice", CONFIG.alice_deposit, 12),
                                ("bob", CONFIG.bob_deposit, 6)]:
        units = to_units(amount)
        book.mint(who, units)
        book.approve(who, ledger.address, units)
        ledger.deposit(who, units, clock.current_time + timedelta(days=30 * months))

    print(f"\nActive accounts: {ledger.active_accounts()}")
    return ledger


def step_07_early_withdrawal(clock, book, ledger):
    """Leaving early costs half the yield."""
    step_header(7, "Early Withdrawal",
        "Before the goal date, half the yield (rounded down) goes to the treasury.")

    clock.advance_time(clock.current_time + timedelta(days=90))
    info = ledger.get_user_info("alice")
    preview = ledger.preview_withdrawal("alice")
    print(f"alice value:   {usdc(info.current_value)}")
    print(f"alice yield:   {usdc(info.yield_amount)}")
    print(f"preview:       receive {usdc(preview.user_will_receive)}, penalty {usdc(preview.penalty_amount)}")

    received = ledger.withdraw("alice")
    print(f"\nalice received {usdc(received)}; treasury holds {usdc(book.balance_of('treasury'))}")


def step_08_on_time(clock, book, ledger):
    """Reaching the goal keeps all the yield."""
    step_header(8, "On-Time Withdrawal",
        "From the goal date on, the full value is paid out.")

    goal = ledger.get_deposit("bob").goal_date
    clock.advance_time(goal)
    print(f"bob is_early: {ledger.get_user_info('bob').is_early}")
    print(f"bob received {usdc(ledger.withdraw('bob'))}")


# ============================================================================
# PHASE 4: SAFETY AND PLANNING (Steps 9-10)
# ============================================================================

def step_09_rejections(book, ledger):
    """Rejected operations leave state unchanged."""
    step_header(9, "Rejected Operations",
        "Validation errors raise and change nothing.")

    before = book.snapshot()
    for label, action in [
        ("withdraw without a deposit", lambda: ledger.withdraw("carol")),
        ("goal date in the past", lambda: ledger.deposit("carol", 1, CONFIG.start_time)),
        ("non-owner changing treasury", lambda: ledger.update_treasury("carol", "carol")),
    ]:
        try:
            action()
        except VaultError as exc:
            print(f"{label:<30} -> {type(exc).__name__}")
    print(f"\nBook unchanged: {book.snapshot() == before}")
    print(f"Supply conserved: {book.verify_conservation()['valid']}")


def step_10_planning():
    """Estimate outcomes before choosing a goal."""
    step_header(10, "Planning a Goal",
        "Project value, yield and early-exit penalty for each horizon.")

    principal = to_units(CONFIG.planning_amount)
    print(f"{'months':>6}  {'goal date':>10}  {'value':>16}  {'yield':>14}  {'penalty':>14}")
    for p in project_goal_outcomes(principal, CONFIG.annual_yield_bps, CONFIG.start_time):
        print(f"{p.months:>6}  {p.goal_date:%Y-%m-%d}  {from_units(p.projected_value):>16,.2f}  "
              f"{from_units(p.projected_yield):>14,.2f}  {from_units(p.early_penalty):>14,.2f}")


def main():
    clock, book = step_01_asset_book()
    wait_for_enter()
    vault = step_02_share_vault(clock, book)
    wait_for_enter()
    step_03_seed(book, vault)
    wait_for_enter()
    step_04_accrual(clock, vault)
    wait_for_enter()
    step_05_rounding(vault)
    wait_for_enter()
    ledger = step_06_goal_deposit(clock, book, vault)
    wait_for_enter()
    step_07_early_withdrawal(clock, book, ledger)
    wait_for_enter()
    step_08_on_time(clock, book, ledger)
    wait_for_enter()
    step_09_rejections(book, ledger)
    wait_for_enter()
    step_10_planning()

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See goalvault/share_vault.py for the pricing rules
      - See goalvault/goal_ledger.py for the penalty calculation
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
