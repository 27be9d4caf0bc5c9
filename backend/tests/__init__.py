"""
Test Suite

Tests for the TicketDesk helpdesk backend.

Structure:
    tests/
    ├── __init__.py         # This file
    ├── conftest.py         # Pytest fixtures (mongomock database, seed data, tokens)
    ├── unit/               # Engine, utility, template and service tests
    └── integration/        # API endpoint tests through the FastAPI test client

To run tests:
    pytest backend/tests/
    pytest backend/tests/unit/
    pytest backend/tests/integration/
"""
