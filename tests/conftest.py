"""
Pytest configuration and shared fixtures for the Emerge test suite.

Responsibilities
----------------
- Testing environment for Config
- Balance configuration, event bus, stores and caches for unit tests
- PostgreSQL testcontainer and DatabaseService for integration tests
- Domain event helpers

Architecture Notes
------------------
- Unit tests run against InMemoryProgressionStore and InMemoryCacheBackend
- Integration tests run SqlProgressionStore against a real PostgreSQL
  started by testcontainers; the container is shared per session and the
  schema is recreated per test
- Retry policies in tests never sleep
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio

from emerge.core.cache.backend import InMemoryCacheBackend
from emerge.core.cache.insight import InsightCache
from emerge.core.config.config import Config
from emerge.core.config.manager import ConfigManager
from emerge.core.database.retry_policy import RetryConfig, TransactionRetryPolicy
from emerge.core.database.service import DatabaseService
from emerge.core.event.bus import EventBus
from emerge.core.logging.logger import get_logger
from emerge.modules.progression.service import ProgressionService
from emerge.modules.progression.store import InMemoryProgressionStore

logger = get_logger(__name__)

FIXED_NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    os.environ["ENVIRONMENT"] = "testing"
    os.environ["LOG_LEVEL"] = "DEBUG"
    Config.load()


# ============================================================================
# CORE FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def config_manager() -> ConfigManager:
    """Packaged balance defaults."""
    return ConfigManager.from_defaults()


@pytest.fixture
def event_bus(config_manager: ConfigManager) -> EventBus:
    return EventBus(config_manager)


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def retry_policy() -> TransactionRetryPolicy:
    """Five attempts, no real backoff."""
    return TransactionRetryPolicy(RetryConfig(max_attempts=5), sleep=_no_sleep)


@pytest.fixture
def memory_store() -> InMemoryProgressionStore:
    return InMemoryProgressionStore()


@pytest.fixture
def cache_backend() -> InMemoryCacheBackend:
    return InMemoryCacheBackend()


@pytest.fixture
def insight_cache(
    cache_backend: InMemoryCacheBackend, config_manager: ConfigManager
) -> InsightCache:
    return InsightCache(cache_backend, config_manager)


@pytest.fixture
def progression_service(
    memory_store: InMemoryProgressionStore,
    config_manager: ConfigManager,
    event_bus: EventBus,
    retry_policy: TransactionRetryPolicy,
) -> ProgressionService:
    return ProgressionService(
        memory_store,
        config_manager,
        event_bus,
        retry_policy=retry_policy,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def mock_event_bus(mocker):
    """EventBus double recording publish calls."""
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator:
    """
    Start a PostgreSQL testcontainer.

    One container per test session.
    """
    from testcontainers.postgres import PostgresContainer

    logger.info("Launching postgres container for integration tests")
    container = PostgresContainer(image="postgres:16-alpine", driver="asyncpg")
    container.start()
    logger.info("PostgreSQL testcontainer started")

    yield container

    logger.info("Tearing down postgres container")
    container.stop()


@pytest_asyncio.fixture
async def database_service(postgres_container) -> AsyncGenerator[DatabaseService, None]:
    """
    DatabaseService bound to the container with a fresh schema.

    Scope: function (tables dropped after each test)
    """
    db = DatabaseService(postgres_container.get_connection_url(), use_null_pool=True)
    await db.initialize()
    await db.drop_schema()
    await db.create_schema()

    yield db

    await db.drop_schema()
    await db.shutdown()


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def assert_domain_event_emitted(domain_model, event_name: str) -> bool:
    """
    True if the aggregate has a pending event with this name.

    Usage:
        progression.apply_gain("e1", 150, level_fn=level_from_xp)
        assert assert_domain_event_emitted(progression, "progression.leveled_up")
    """
    events = domain_model.get_pending_events()
    return any(event.event_name == event_name for event in events)


def get_domain_event_payload(domain_model, event_name: str) -> dict | None:
    for event in domain_model.get_pending_events():
        if event.event_name == event_name:
            return event.payload
    return None
