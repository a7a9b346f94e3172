"""
Concurrency Conformance Tests

INVARIANT: Concurrent callers observe one-operation-at-a-time semantics.

    ∀ concurrent withdraw() calls for the same account:
        exactly one succeeds, every other raises NoActiveDeposit

    ∀ concurrent deposits by distinct accounts:
        every deposit is recorded, share supply equals the sum of balances,
        and the asset book conserves supply

INVARIANT: A rolled-back operation never erases another thread's commit.

    ∀ ledger operation L, direct vault operation V on another thread:
        V waits until L commits or rolls back, so L's rollback restores
        only what L changed

    ∀ ledgers sharing one vault, one asset book and one treasury:
        concurrent early withdrawals credit every penalty to the treasury
"""

import threading
from concurrent.futures import ThreadPoolExecutor

from goalvault import (
    AssetBook, BookTransferPort, ShareVault, GoalSavingsLedger, LogicalClock,
    NoActiveDeposit, DuplicateActiveDeposit, InsufficientBalance, PenaltyCollected,
)

from tests.conftest import (
    START, LEDGER_ADDRESS, VAULT_ADDRESS, TREASURY, ADMIN, RATE_BPS, SEED_DEPOSIT,
    make_system, fund, days,
)


def run_concurrently(fn, args_list):
    """Start every call behind a barrier and collect results or exceptions."""
    barrier = threading.Barrier(len(args_list))

    def call(args):
        barrier.wait()
        try:
            return fn(*args)
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        return list(pool.map(call, args_list))


class BlockingPushPort(BookTransferPort):
    """BookTransferPort whose push to one destination waits for release, then fails."""

    def __init__(self, book, holder, blocked_dest=None):
        super().__init__(book, holder)
        self.blocked_dest = blocked_dest
        self.blocked = threading.Event()
        self.release = threading.Event()

    def push(self, dest, amount):
        if dest == self.blocked_dest:
            self.blocked.set()
            self.release.wait(timeout=5)
            raise InsufficientBalance(f"push of {amount} to {dest} refused")
        super().push(dest, amount)


def build_blocking(vault_blocks=None, ledger_blocks=None):
    clock = LogicalClock(START)
    book = AssetBook("USDC", "USD Coin", clock)
    vault_port = BlockingPushPort(book, VAULT_ADDRESS, vault_blocks)
    ledger_port = BlockingPushPort(book, LEDGER_ADDRESS, ledger_blocks)
    vault = ShareVault(vault_port, clock, annual_yield_rate_bps=RATE_BPS)
    fund(book, "seeder", SEED_DEPOSIT, spender=VAULT_ADDRESS)
    vault.deposit("seeder", SEED_DEPOSIT, "seeder")
    book.mint(VAULT_ADDRESS, 10**9)
    ledger = GoalSavingsLedger(ledger_port, vault, TREASURY, ADMIN, clock)
    return clock, book, vault, ledger, vault_port, ledger_port


def run_while_blocked(port, blocked_call, other_call):
    """
    Start blocked_call, then other_call once port is blocked, then release.

    Returns:
        (blocked_outcome, other_outcome, other_waited); outcomes are return
        values or raised exceptions
    """
    outcome = {}

    def thread_for(key, fn):
        def run():
            try:
                outcome[key] = fn()
            except Exception as exc:
                outcome[key] = exc
        return threading.Thread(target=run)

    first = thread_for('blocked', blocked_call)
    first.start()
    assert port.blocked.wait(timeout=5)
    second = thread_for('other', other_call)
    second.start()
    second.join(timeout=0.2)
    other_waited = second.is_alive()
    port.release.set()
    first.join(timeout=5)
    second.join(timeout=5)
    return outcome['blocked'], outcome['other'], other_waited


class TestConcurrentWithdrawals:

    def test_single_winner(self):
        clock, book, vault, ledger = make_system(reserve=10**9)
        fund(book, "alice", 10**9, spender=LEDGER_ADDRESS)
        ledger.deposit("alice", 10**9, START + days(365))
        clock.advance_time(START + days(200))
        expected = ledger.preview_withdrawal("alice").user_will_receive

        results = run_concurrently(ledger.withdraw, [("alice",)] * 8)

        payouts = [r for r in results if isinstance(r, int)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert payouts == [expected]
        assert len(failures) == 7
        assert all(isinstance(f, NoActiveDeposit) for f in failures)
        assert book.balance_of("alice") == expected


class TestConcurrentDeposits:

    def test_distinct_accounts_all_recorded(self):
        clock, book, vault, ledger = make_system()
        accounts = [f"saver_{i}" for i in range(16)]
        for i, account in enumerate(accounts):
            fund(book, account, 1_000_000 + i, spender=LEDGER_ADDRESS)

        goal = START + days(180)
        results = run_concurrently(
            ledger.deposit,
            [(account, 1_000_000 + i, goal) for i, account in enumerate(accounts)],
        )

        assert not [r for r in results if isinstance(r, Exception)]
        assert ledger.active_accounts() == sorted(accounts)
        assert ledger.total_principal() == sum(1_000_000 + i for i in range(16))
        assert sum(ledger.get_deposit(a).shares for a in accounts) == vault.balance_of(LEDGER_ADDRESS)
        assert vault.verify_share_supply()['valid']
        assert book.verify_conservation()['valid']

    def test_same_account_single_deposit(self):
        clock, book, vault, ledger = make_system()
        fund(book, "alice", 8_000, spender=LEDGER_ADDRESS)

        results = run_concurrently(ledger.deposit, [("alice", 1_000, START + days(30))] * 8)

        assert len([r for r in results if isinstance(r, int)]) == 1
        assert all(isinstance(r, DuplicateActiveDeposit) for r in results if isinstance(r, Exception))
        assert book.balance_of("alice") == 7_000


# ============================================================================
# Ledger and vault operations on different threads
# ============================================================================

class TestLedgerAndVaultInterleaved:

    def test_direct_deposit_survives_failed_ledger_withdraw(self):
        clock, book, vault, ledger, vault_port, ledger_port = build_blocking(ledger_blocks=TREASURY)
        fund(book, "alice", 10**9, spender=LEDGER_ADDRESS)
        fund(book, "bob", 5_000_000, spender=VAULT_ADDRESS)
        ledger.deposit("alice", 10**9, START + days(365))
        clock.advance_time(START + days(100))
        alice_record = ledger.get_deposit("alice")
        ledger_shares = vault.balance_of(LEDGER_ADDRESS)

        withdrawn, bob_shares, bob_waited = run_while_blocked(
            ledger_port,
            lambda: ledger.withdraw("alice"),
            lambda: vault.deposit("bob", 5_000_000, "bob"),
        )

        assert isinstance(withdrawn, InsufficientBalance)
        assert bob_waited
        assert ledger.get_deposit("alice") == alice_record
        assert vault.balance_of(LEDGER_ADDRESS) == ledger_shares
        assert isinstance(bob_shares, int) and bob_shares > 0
        assert vault.balance_of("bob") == bob_shares
        assert book.balance_of("bob") == 0
        assert book.balance_of(TREASURY) == 0
        assert vault.verify_share_supply()['valid']
        assert book.verify_conservation()['valid']

    def test_ledger_deposit_survives_failed_direct_redeem(self):
        clock, book, vault, ledger, vault_port, ledger_port = build_blocking(vault_blocks="seeder")
        fund(book, "carol", 10**9, spender=LEDGER_ADDRESS)
        seeder_shares = vault.balance_of("seeder")
        seeder_balance = book.balance_of("seeder")

        redeemed, carol_shares, carol_waited = run_while_blocked(
            vault_port,
            lambda: vault.redeem("seeder", seeder_shares, "seeder", "seeder"),
            lambda: ledger.deposit("carol", 10**9, START + days(365)),
        )

        assert isinstance(redeemed, InsufficientBalance)
        assert carol_waited
        assert vault.balance_of("seeder") == seeder_shares
        assert book.balance_of("seeder") == seeder_balance
        assert isinstance(carol_shares, int)
        assert ledger.get_deposit("carol").shares == carol_shares
        assert vault.balance_of(LEDGER_ADDRESS) == carol_shares
        assert book.balance_of("carol") == 0
        assert vault.verify_share_supply()['valid']
        assert book.verify_conservation()['valid']


class TestLedgersSharingTreasury:

    def test_concurrent_early_withdrawals_credit_every_penalty(self):
        clock, book, vault, ledger_a = make_system(reserve=10**10)
        ledger_b = GoalSavingsLedger(
            BookTransferPort(book, "goal_ledger_b"), vault, TREASURY, ADMIN, clock,
        )
        ledgers = (ledger_a, ledger_b)
        accounts = [f"saver_{i}" for i in range(8)]
        for i, account in enumerate(accounts):
            amount = 10**9 + i
            fund(book, account, 2 * amount)
            for ledger in ledgers:
                book.approve(account, ledger.address, amount)
                ledger.deposit(account, amount, START + days(365))
        clock.advance_time(START + days(120))
        assert all(l.preview_withdrawal(a).penalty_amount > 0 for l in ledgers for a in accounts)

        results = run_concurrently(
            lambda ledger, account: ledger.withdraw(account),
            [(ledger, account) for account in accounts for ledger in ledgers],
        )

        assert not [r for r in results if isinstance(r, Exception)]
        penalties = [e.amount for l in ledgers for e in l.events_of(PenaltyCollected)]
        assert len(penalties) == 2 * len(accounts)
        assert book.balance_of(TREASURY) == sum(penalties)
        assert all(not l.active_accounts() for l in ledgers)
        assert vault.balance_of(LEDGER_ADDRESS) == 0
        assert vault.balance_of(ledger_b.address) == 0
        assert vault.verify_share_supply()['valid']
        assert book.verify_conservation()['valid']
