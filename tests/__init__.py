"""
hostbus Test Suite
==================

Test Organization
-----------------
- tests/unit/          : Fast unit tests (no event loop unless marked asyncio)
- tests/integration/   : Whole-process wiring through ApplicationContext

Testing Philosophy
------------------
- Unit tests: isolated components, mocks only at the host boundary
- Integration tests: real bus, loader and lifecycle with in-process hosts
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
