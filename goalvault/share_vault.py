"""
share_vault.py - Share-Based Yield Vault

The ShareVault pools a single asset and issues shares against it. Shares are
the vault's internal accounting unit: each one is a proportional claim on
the pool's total assets. The pool's total value grows linearly at a fixed
annual rate, so the same number of shares is worth more assets over time.

Pricing:
    total_assets = cached + cached * rate_bps * elapsed / (SECONDS_PER_YEAR * 10000)
    shares_for(assets) = assets * supply / total_assets        (floor)
    assets_for(shares) = shares * total_assets / supply        (floor)

Rules:
    - Accrue before every change to supply or cached totals, so yield earned
      so far is locked in at the old share price.
    - Deposits and redemptions round in the pool's favour (floor). Previews of
      a required input (preview_mint, preview_withdraw) round up.
    - The first deposit locks DEAD_SHARES to DEAD_ADDRESS, backed 1:1 by that
      deposit, so nobody can inflate the share price of a near-empty pool.
    - Zero-share and zero-asset results are errors, never silent no-ops.

All public operations are serialised on one lock per vault, run
all-or-nothing (the asset port is rolled back with the vault) and reject
reentry from the asset port. A mutation holds the vault lock and then the
asset book lock until it commits or rolls back.
"""

from __future__ import annotations
import threading
from datetime import datetime
from typing import Any, Dict, List, Tuple

from .core import (
    # Types
    AssetTransferPort, LogicalClock, Rounding, VaultDeposit, VaultWithdraw,
    # Constants
    BPS_DENOMINATOR, DEAD_ADDRESS, DEAD_SHARES, DEFAULT_ANNUAL_YIELD_BPS,
    SECONDS_PER_YEAR, USDC_DECIMALS,
    # Exceptions
    FirstDepositBelowFloor, InsufficientAllowance, InsufficientBalance,
    ZeroSharesOrAssetsResult,
    # Helpers
    atomic, checked_add, checked_mul, checked_sub, elapsed_seconds,
    filter_events, mul_div, non_reentrant, require_address, require_amount,
    require_uint,
)


class ShareVault:
    """
    Single-asset pool that mints and burns shares at an appreciating price.

    The vault's address is the custody holder of its asset port; assets
    pulled in land there and redemptions are paid from there. Accrued yield
    is accounting only: the custody balance must be topped up (a yield
    reserve) for redemptions to pay out more than was deposited.

    Example:
        clock = LogicalClock(datetime(2025, 1, 1))
        book = AssetBook("USDC", "USD Coin", clock)
        vault = ShareVault(BookTransferPort(book, "share_vault"), clock,
                           annual_yield_rate_bps=500)
        book.mint("alice", 5_000_000)
        book.approve("alice", vault.address, 5_000_000)
        shares = vault.deposit("alice", 5_000_000, "alice")
    """

    def __init__(
        self,
        asset_port: AssetTransferPort,
        clock: LogicalClock,
        annual_yield_rate_bps: int = DEFAULT_ANNUAL_YIELD_BPS,
        name: str = "Goal Share Vault",
        symbol: str = "gvUSDC",
        decimals: int = USDC_DECIMALS,
        verbose: bool = False,
    ):
        """
        Create an empty vault.

        Args:
            asset_port: Moves the pooled asset; its address is the vault's address
            clock: Shared logical clock
            annual_yield_rate_bps: Linear annual yield in basis points (immutable)
            name: Share token name
            symbol: Share token symbol
            decimals: Share decimals (matches the asset)
            verbose: Print each applied or rejected operation

        Raises:
            ValueError: If annual_yield_rate_bps is not a non-negative int
        """
        if isinstance(annual_yield_rate_bps, bool) or not isinstance(annual_yield_rate_bps, int):
            raise ValueError(f"annual_yield_rate_bps must be an int, got {annual_yield_rate_bps!r}")
        if annual_yield_rate_bps < 0:
            raise ValueError(f"annual_yield_rate_bps must be non-negative, got {annual_yield_rate_bps}")
        self._port = asset_port
        self.clock = clock
        self._annual_yield_rate_bps = annual_yield_rate_bps
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.verbose = verbose

        self.total_share_supply: int = 0
        self.cached_total_assets: int = 0
        self.last_accrual_time: datetime = clock.current_time
        self.holder_share_balance: Dict[str, int] = {}
        self.share_allowance: Dict[Tuple[str, str], int] = {}
        self.dead_shares_minted: bool = False
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
    def annual_yield_rate_bps(self) -> int:
        return self._annual_yield_rate_bps

    def balance_of(self, holder: str) -> int:
        with self._lock:
            return self.holder_share_balance.get(holder, 0)

    def allowance(self, owner: str, spender: str) -> int:
        with self._lock:
            return self.share_allowance.get((owner, spender), 0)

    def total_assets(self) -> int:
        """
        Pool value at the current time: cached total plus linear accrual since
        the last accrual. Does not mutate state. Zero when the pool is empty.
        """
        with self._lock:
            return self._total_assets_at(self.clock.current_time)

    def convert_to_shares(self, assets: int) -> int:
        """Shares the pool would issue for assets (floor). 1:1 while empty."""
        require_uint(assets, "assets")
        with self._lock:
            return self._convert_to_shares(assets, Rounding.FLOOR)

    def convert_to_assets(self, shares: int) -> int:
        """Assets the pool would pay for shares (floor). 1:1 while no shares exist."""
        require_uint(shares, "shares")
        with self._lock:
            return self._convert_to_assets(shares, Rounding.FLOOR)

    def preview_deposit(self, assets: int) -> int:
        """
        Shares the receiver would get for depositing assets now.

        On the first deposit the seed shares come out of the deposit, so the
        preview is assets - DEAD_SHARES (0 if the deposit cannot cover them).
        """
        require_uint(assets, "assets")
        with self._lock:
            if not self.dead_shares_minted:
                return max(assets - DEAD_SHARES, 0)
            return self._convert_to_shares(assets, Rounding.FLOOR)

    def preview_mint(self, shares: int) -> int:
        """Assets required to mint exactly shares now (rounded up)."""
        require_uint(shares, "shares")
        with self._lock:
            if not self.dead_shares_minted:
                return checked_add(shares, DEAD_SHARES)
            return self._convert_to_assets(shares, Rounding.CEIL)

    def preview_withdraw(self, assets: int) -> int:
        """Shares that must be burned to withdraw exactly assets now (rounded up)."""
        require_uint(assets, "assets")
        with self._lock:
            return self._convert_to_shares(assets, Rounding.CEIL)

    def preview_redeem(self, shares: int) -> int:
        """Assets paid for redeeming shares now (floor)."""
        return self.convert_to_assets(shares)

    def max_redeem(self, owner: str) -> int:
        return self.balance_of(owner)

    def max_withdraw(self, owner: str) -> int:
        with self._lock:
            return self._convert_to_assets(
                self.holder_share_balance.get(owner, 0), Rounding.FLOOR
            )

    def share_price(self) -> int:
        """Assets one whole share (10**decimals units) is worth right now."""
        return self.convert_to_assets(10 ** self.decimals)

    def verify_share_supply(self) -> Dict[str, Any]:
        """
        Check that total_share_supply equals the sum of holder balances.

        Returns:
            Dict with 'valid', 'total_share_supply', 'sum_of_balances'.
        """
        with self._lock:
            summed = sum(self.holder_share_balance.values())
            return {
                'valid': summed == self.total_share_supply,
                'total_share_supply': self.total_share_supply,
                'sum_of_balances': summed,
            }

    def events_of(self, kind: type) -> List[Any]:
        return filter_events(self.events, kind)

    # ========================================================================
    # PRICING INTERNALS
    # ========================================================================

    def _total_assets_at(self, now: datetime) -> int:
        cached = self.cached_total_assets
        if cached == 0:
            return 0
        elapsed = elapsed_seconds(self.last_accrual_time, now)
        accrued = mul_div(
            cached,
            checked_mul(self._annual_yield_rate_bps, elapsed),
            SECONDS_PER_YEAR * BPS_DENOMINATOR,
        )
        return checked_add(cached, accrued)

    def _accrue(self) -> None:
        """Fold yield earned since last_accrual_time into cached_total_assets."""
        now = self.clock.current_time
        self.cached_total_assets = self._total_assets_at(now)
        if now > self.last_accrual_time:
            self.last_accrual_time = now

    def _convert_to_shares(self, assets: int, rounding: Rounding) -> int:
        supply = self.total_share_supply
        total = self._total_assets_at(self.clock.current_time)
        if supply == 0 or total == 0:
            return assets
        return mul_div(assets, supply, total, rounding)

    def _convert_to_assets(self, shares: int, rounding: Rounding) -> int:
        supply = self.total_share_supply
        if supply == 0:
            return shares
        total = self._total_assets_at(self.clock.current_time)
        return mul_div(shares, total, supply, rounding)

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    @non_reentrant
    def deposit(self, caller: str, assets: int, receiver: str) -> int:
        """
        Pull assets from caller and mint shares to receiver.

        Args:
            caller: Account paying the assets (must have approved the vault)
            assets: Amount to deposit, in smallest units
            receiver: Account credited with the shares

        Returns:
            Shares minted to receiver

        Raises:
            InvalidAmount: If assets is not a positive integer
            InvalidAddress: If receiver is null
            FirstDepositBelowFloor: If this first deposit is below DEAD_SHARES
            ZeroSharesOrAssetsResult: If assets convert to zero shares
            InsufficientBalance, InsufficientAllowance: From the asset port
        """
        require_amount(assets, "assets")
        require_address(receiver, "receiver")
        with atomic(self, self._port):
            self._accrue()
            seed = 0
            if not self.dead_shares_minted:
                if assets < DEAD_SHARES:
                    self._reject(f"first deposit {assets} < floor {DEAD_SHARES}")
                    raise FirstDepositBelowFloor(
                        f"First deposit must be at least {DEAD_SHARES}, got {assets}"
                    )
                seed = DEAD_SHARES
            shares = self._convert_to_shares(assets - seed, Rounding.FLOOR)
            if shares == 0:
                self._reject(f"deposit of {assets} converts to zero shares")
                raise ZeroSharesOrAssetsResult(f"Deposit of {assets} assets converts to zero shares")

            self._port.pull(caller, assets)
            if seed:
                self._mint_shares(DEAD_ADDRESS, seed)
                self.dead_shares_minted = True
            self._mint_shares(receiver, shares)
            self.cached_total_assets = checked_add(self.cached_total_assets, assets)
            self._emit(VaultDeposit(caller, receiver, assets, shares, self.clock.current_time))
        return shares

    @non_reentrant
    def mint(self, caller: str, shares: int, receiver: str) -> int:
        """
        Mint exactly shares to receiver, pulling the required assets (rounded up).

        On the first deposit the caller also pays for the seed shares.

        Returns:
            Assets pulled from caller
        """
        require_amount(shares, "shares")
        require_address(receiver, "receiver")
        with atomic(self, self._port):
            self._accrue()
            seed = 0
            if not self.dead_shares_minted:
                seed = DEAD_SHARES
                assets = checked_add(shares, seed)
            else:
                assets = self._convert_to_assets(shares, Rounding.CEIL)
            if assets == 0:
                self._reject(f"mint of {shares} shares requires zero assets")
                raise ZeroSharesOrAssetsResult(f"Mint of {shares} shares requires zero assets")

            self._port.pull(caller, assets)
            if seed:
                self._mint_shares(DEAD_ADDRESS, seed)
                self.dead_shares_minted = True
            self._mint_shares(receiver, shares)
            self.cached_total_assets = checked_add(self.cached_total_assets, assets)
            self._emit(VaultDeposit(caller, receiver, assets, shares, self.clock.current_time))
        return assets

    @non_reentrant
    def redeem(self, caller: str, shares: int, receiver: str, owner: str) -> int:
        """
        Burn shares from owner and pay the assets they are worth to receiver.

        If caller is not owner, caller's share allowance must cover shares and
        is decremented.

        Returns:
            Assets paid to receiver

        Raises:
            InvalidAmount: If shares is not a positive integer
            InvalidAddress: If receiver or owner is null
            InsufficientAllowance: If caller may not spend owner's shares
            InsufficientBalance: If owner holds fewer shares
            ZeroSharesOrAssetsResult: If shares convert to zero assets
        """
        require_amount(shares, "shares")
        require_address(receiver, "receiver")
        require_address(owner, "owner")
        with atomic(self, self._port):
            self._spend_allowance(owner, caller, shares)
            self._require_shares(owner, shares)
            self._accrue()
            assets = self._convert_to_assets(shares, Rounding.FLOOR)
            if assets == 0:
                self._reject(f"redeem of {shares} shares converts to zero assets")
                raise ZeroSharesOrAssetsResult(f"Redeem of {shares} shares converts to zero assets")
            self._withdraw(caller, receiver, owner, assets, shares)
        return assets

    @non_reentrant
    def withdraw(self, caller: str, assets: int, receiver: str, owner: str) -> int:
        """
        Pay exactly assets to receiver, burning the required shares (rounded up).

        Returns:
            Shares burned from owner
        """
        require_amount(assets, "assets")
        require_address(receiver, "receiver")
        require_address(owner, "owner")
        with atomic(self, self._port):
            self._accrue()
            shares = self._convert_to_shares(assets, Rounding.CEIL)
            if shares == 0:
                self._reject(f"withdraw of {assets} converts to zero shares")
                raise ZeroSharesOrAssetsResult(f"Withdraw of {assets} assets converts to zero shares")
            self._spend_allowance(owner, caller, shares)
            self._require_shares(owner, shares)
            self._withdraw(caller, receiver, owner, assets, shares)
        return shares

    @non_reentrant
    def approve(self, owner: str, spender: str, shares: int) -> None:
        """Let spender redeem up to shares of owner's balance. Zero revokes."""
        require_address(spender, "spender")
        require_uint(shares, "shares")
        self.share_allowance[(owner, spender)] = shares

    # ========================================================================
    # MUTATION INTERNALS
    # ========================================================================

    def _spend_allowance(self, owner: str, spender: str, shares: int) -> None:
        if spender == owner:
            return
        current = self.share_allowance.get((owner, spender), 0)
        if current < shares:
            self._reject(f"share allowance {owner}->{spender}: {current} < {shares}")
            raise InsufficientAllowance(
                f"{spender} may redeem {current} shares of {owner}, needs {shares}"
            )
        self.share_allowance[(owner, spender)] = current - shares

    def _require_shares(self, owner: str, shares: int) -> None:
        held = self.holder_share_balance.get(owner, 0)
        if held < shares:
            self._reject(f"{owner} shares: {held} < {shares}")
            raise InsufficientBalance(f"{owner} holds {held} shares, needs {shares}")

    def _mint_shares(self, holder: str, shares: int) -> None:
        self.holder_share_balance[holder] = checked_add(
            self.holder_share_balance.get(holder, 0), shares
        )
        self.total_share_supply = checked_add(self.total_share_supply, shares)

    def _burn_shares(self, holder: str, shares: int) -> None:
        remaining = checked_sub(self.holder_share_balance.get(holder, 0), shares)
        if remaining:
            self.holder_share_balance[holder] = remaining
        else:
            self.holder_share_balance.pop(holder, None)
        self.total_share_supply = checked_sub(self.total_share_supply, shares)

    def _withdraw(self, caller: str, receiver: str, owner: str, assets: int, shares: int) -> None:
        # Burn and book before paying out: the push is the reentry point.
        self._burn_shares(owner, shares)
        self.cached_total_assets = checked_sub(self.cached_total_assets, assets)
        self._port.push(receiver, assets)
        self._emit(VaultWithdraw(caller, receiver, owner, assets, shares, self.clock.current_time))

    def _emit(self, event: Any) -> None:
        self.events.append(event)
        if self.verbose:
            print(f"✓ {self.symbol}: {event}")

    def _reject(self, reason: str) -> None:
        if self.verbose:
            print(f"✗ REJECTED ({self.symbol}): {reason}")

    # ========================================================================
    # SNAPSHOT / RESTORE
    # ========================================================================

    def snapshot(self) -> Dict[str, Any]:
        return {
            'total_share_supply': self.total_share_supply,
            'cached_total_assets': self.cached_total_assets,
            'last_accrual_time': self.last_accrual_time,
            'holder_share_balance': dict(self.holder_share_balance),
            'share_allowance': dict(self.share_allowance),
            'dead_shares_minted': self.dead_shares_minted,
            'events_length': len(self.events),
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self.total_share_supply = state['total_share_supply']
        self.cached_total_assets = state['cached_total_assets']
        self.last_accrual_time = state['last_accrual_time']
        self.holder_share_balance = dict(state['holder_share_balance'])
        self.share_allowance = dict(state['share_allowance'])
        self.dead_shares_minted = state['dead_shares_minted']
        del self.events[state['events_length']:]

    def __repr__(self) -> str:
        return (f"ShareVault({self.symbol}, supply={self.total_share_supply}, "
                f"total_assets={self.cached_total_assets}, rate={self._annual_yield_rate_bps}bps)")
