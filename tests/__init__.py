"""
Clicker Upgrade Engine Test Suite
=================================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with mocks (no external dependencies)
- tests/unit/domain/   : Pure domain logic (curves, player contexts)
- tests/integration/   : Real DatabaseService on aiosqlite, PostgreSQL via
                         testcontainers where backend behaviour matters

Testing Philosophy
------------------
- Unit tests: Fast, isolated, test business logic
- Integration tests: Slower, test real infrastructure interactions
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
