"""
Conformance Test Suite

Property-based tests for the behaviour every goalvault deployment must keep,
whatever the amounts, rates or timings involved.

The tests are organized by invariant:
1. test_rounding.py - Conversions never favour the caller; share price never falls
2. test_penalty.py - Payout plus penalty always equals the position's value
3. test_atomicity.py - Failed operations change nothing
4. test_reentrancy.py - Callbacks from the asset port cannot re-enter
5. test_concurrency.py - Concurrent callers see one-at-a-time semantics
"""
