"""
Emerge progression engine tests.

- tests/unit/         : rules, services and infrastructure with in-memory fakes
- tests/unit/domain/  : domain models and value objects
- tests/integration/  : PostgreSQL store via testcontainers (needs Docker)

Select with markers, e.g. `pytest -m "not integration"`.
"""
