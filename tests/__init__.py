"""
STOCKCOUNT Test Suite

Test Organization:
    tests/
    ├── __init__.py          # This file
    ├── conftest.py          # Shared fixtures
    ├── fixtures/            # Fakes for search, clocks and event sinks
    ├── unit/                # Unit tests (no network, in-memory SQLite)
    └── e2e/                 # Full session flow through the pipeline

Running Tests:
    # Run all tests
    pytest tests/

    # Only end-to-end tests
    pytest tests/ -m e2e

Requirements:
    pip install -e ".[test]"
"""
