"""
conftest.py - Shared pytest fixtures for goalvault tests

Provides common fixtures used across unit, conformance and functional tests:
- A shared logical clock starting at START
- An asset book, a share vault and a goal ledger wired together
- A vault already seeded by a bootstrap depositor
- Fake-port ledgers for exact penalty arithmetic
"""

import pytest
from datetime import datetime, timedelta

from goalvault import (
    LogicalClock, AssetBook, BookTransferPort, ShareVault, GoalSavingsLedger,
)

from tests.fake_ports import FakeTransferPort, FakeSharePricing


START = datetime(2025, 1, 1)
YEAR_SECONDS = 365 * 24 * 60 * 60
RATE_BPS = 500
SEED_DEPOSIT = 1_000_000

VAULT_ADDRESS = "share_vault"
LEDGER_ADDRESS = "goal_ledger"
TREASURY = "treasury"
ADMIN = "admin"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def fund(book: AssetBook, holder: str, amount: int, spender: str = None) -> None:
    """Mint amount to holder and, if given, approve spender for all of it."""
    book.mint(holder, amount)
    if spender is not None:
        book.approve(holder, spender, amount)


def days(n: int) -> timedelta:
    return timedelta(days=n)


def make_system(rate_bps: int = RATE_BPS, seed: int = SEED_DEPOSIT, reserve: int = 0):
    """
    Build a fresh clock, book, seeded vault and goal ledger.

    For property tests, which cannot share function-scoped fixtures across
    examples. `reserve` is minted straight into the vault to fund yield.

    Returns:
        (clock, book, vault, ledger)
    """
    clock = LogicalClock(START)
    book = AssetBook("USDC", "USD Coin", clock)
    vault = ShareVault(BookTransferPort(book, VAULT_ADDRESS), clock, annual_yield_rate_bps=rate_bps)
    fund(book, "seeder", seed, spender=VAULT_ADDRESS)
    vault.deposit("seeder", seed, "seeder")
    if reserve:
        book.mint(VAULT_ADDRESS, reserve)
    ledger = GoalSavingsLedger(
        asset_port=BookTransferPort(book, LEDGER_ADDRESS),
        vault=vault,
        treasury=TREASURY,
        owner=ADMIN,
        clock=clock,
    )
    return clock, book, vault, ledger


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return LogicalClock(START)


@pytest.fixture
def book(clock):
    return AssetBook("USDC", "USD Coin", clock)


@pytest.fixture
def vault(book, clock):
    return ShareVault(BookTransferPort(book, VAULT_ADDRESS), clock, annual_yield_rate_bps=RATE_BPS)


@pytest.fixture
def seeded_vault(book, vault):
    """Vault whose first deposit (and seed shares) came from 'seeder'."""
    fund(book, "seeder", SEED_DEPOSIT, spender=vault.address)
    vault.deposit("seeder", SEED_DEPOSIT, "seeder")
    return vault


@pytest.fixture
def funded_vault(book, seeded_vault):
    """Seeded vault holding a 200-unit yield reserve."""
    book.mint(VAULT_ADDRESS, 200_000_000)
    return seeded_vault


@pytest.fixture
def goal_ledger(book, seeded_vault, clock):
    return GoalSavingsLedger(
        asset_port=BookTransferPort(book, LEDGER_ADDRESS),
        vault=seeded_vault,
        treasury=TREASURY,
        owner=ADMIN,
        clock=clock,
    )


@pytest.fixture
def fake_port():
    return FakeTransferPort(LEDGER_ADDRESS, balances={'alice': 2_000_000_000, 'bob': 2_000_000_000})


@pytest.fixture
def fake_vault(fake_port):
    return FakeSharePricing(fake_port)


@pytest.fixture
def fake_ledger(fake_port, fake_vault, clock):
    """Goal ledger on fake ports: position value is set directly on fake_vault."""
    return GoalSavingsLedger(
        asset_port=fake_port,
        vault=fake_vault,
        treasury=TREASURY,
        owner=ADMIN,
        clock=clock,
    )
