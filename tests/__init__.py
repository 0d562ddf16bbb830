"""
Verdict test suite.

This package contains tests for the Verdict authorization engine:
- Policy and registry tests
- Context resolution tests
- Evaluator, memoization and reason tests
- Scoping tests
- Exposed payload and configuration tests
- Observability hook tests
"""
