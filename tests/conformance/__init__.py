"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the marketplace ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_conservation.py - Purchases move cash, they never create or destroy it
2. test_atomicity.py - Every operation commits completely or not at all
3. test_uniqueness.py - Emails and ids stay unique across any history
4. test_concurrency.py - Concurrent writers cannot double-sell or double-spend

These tests use hypothesis for property-based testing.
"""
