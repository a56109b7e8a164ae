"""
Integration tests package.

These tests run against a real PostgreSQL database with the pgvector
extension, addressed by ``DATABASE_URL``.

To run integration tests:
    pytest tests/integration/ -v --run-integration

To skip integration tests (default):
    pytest tests/ -v
"""
