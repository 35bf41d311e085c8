"""Test suite for cnasignal.

Test organization:
- fixtures/: Mock count tables, stage graphs and test utilities
- unit/: Unit tests for individual modules and end-to-end runs

Run tests with:
    pytest tests/
    pytest tests/unit/
    pytest tests/ -v --tb=short
"""
