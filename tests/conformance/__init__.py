"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the custodial bank.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Totals equal the sum of balances; custody stays solvent
2. atomicity.py - Rejected operations leave no trace
3. limits.py - Global capacity and withdrawal ceiling
4. reentrancy.py - Nested operations are rejected
5. normalization.py - Precision scaling properties

These tests use hypothesis for property-based testing.
"""
