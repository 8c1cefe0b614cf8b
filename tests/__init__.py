"""
Tests Package - Unit Tests

Test structure:
- tests/fakes.py - In-memory object store and query service
- tests/conftest.py - Shared pytest fixtures
- tests/test_*.py - One module per component

AWS and Redis clients are replaced with fakes or unittest.mock objects;
no network access is needed.
"""
