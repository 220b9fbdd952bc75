"""
Pytest Configuration and Fixtures for the Clicker Upgrade Engine
================================================================

Purpose
-------
Centralized fixtures for the upgrade engine test suite: configuration,
catalog, player contexts, a scriptable GameCore double, and database
fixtures for integration tests.

Architecture Notes
------------------
- Unit tests use mocks (fast, isolated)
- Integration tests run the real `DatabaseService` against in-memory
  aiosqlite; the PostgreSQL testcontainer is only used where backend
  behaviour matters and is skipped without docker
- Database fixtures provide a clean schema per test
"""

from __future__ import annotations

import os
import uuid
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Generator, List, Mapping, Optional

import pytest
import pytest_asyncio

# must be set before clicker is imported: Config and logging read it at import time
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from clicker.core.config.manager import ConfigManager
from clicker.core.database.service import DatabaseService
from clicker.core.event import EventBus
from clicker.core.exceptions import GameCoreError
from clicker.core.infra.game_core_client import EffectUpdate, GameSessionInfo
from clicker.core.logging.logger import get_logger
from clicker.domain.models.big_number import to_big
from clicker.domain.models.player import PlayerUpgradeContext
from clicker.modules.upgrade.calculation_engine import UpgradeCalculationEngine
from clicker.modules.upgrade.catalog import UpgradeCatalog

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = PROJECT_ROOT / "config"
CATALOG_PATH = CONFIG_DIR / "upgrades" / "catalog.yaml"

SQLITE_MEMORY_URL = "sqlite+aiosqlite:///:memory:"


# ============================================================================
# CONFIGURATION & CATALOG
# ============================================================================


@pytest.fixture
def config_manager() -> Generator[type[ConfigManager], None, None]:
    """
    ConfigManager loaded from the repository `config/` directory.

    Scope: function (reset afterwards)
    """
    ConfigManager.initialize(CONFIG_DIR)
    yield ConfigManager
    ConfigManager.reset()


@pytest.fixture
def catalog() -> UpgradeCatalog:
    """Seed catalog from config/upgrades/catalog.yaml."""
    return UpgradeCatalog.from_yaml(CATALOG_PATH)


@pytest.fixture
def engine(catalog: UpgradeCatalog) -> UpgradeCalculationEngine:
    return UpgradeCalculationEngine(catalog)


@pytest.fixture
def player_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_context(player_id):
    """
    Factory for player contexts.

    Usage:
        context = make_context(score=500, owned={"click_power_1": 10})
    """

    def _make(
        score: Any = 0,
        owned: Optional[Mapping[str, int]] = None,
        player_level: Optional[int] = None,
        click_count: Any = 0,
        pid: Optional[uuid.UUID] = None,
    ) -> PlayerUpgradeContext:
        owned = dict(owned or {})
        level = (
            player_level
            if player_level is not None
            else UpgradeCalculationEngine.player_level_for(sum(owned.values()))
        )
        return PlayerUpgradeContext(
            player_id=pid or player_id,
            current_score=to_big(score),
            player_level=level,
            click_count=to_big(click_count),
            owned_upgrades=owned,
        )

    return _make


# ============================================================================
# EVENTS
# ============================================================================


@pytest.fixture
def event_bus() -> EventBus:
    """Fresh in-process bus per test."""
    return EventBus()


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests.

    Scope: function
    Uses: Unit tests that need to assert on published events
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


@pytest.fixture
def recorded_events(event_bus: EventBus) -> List[Dict[str, Any]]:
    """Every event published on `event_bus`, as {"name", "data"} dicts."""
    events: List[Dict[str, Any]] = []

    def _make_listener(name: str):
        def _listener(data):
            events.append({"name": name, "data": data})

        return _listener

    for name in (
        "upgrade.purchased",
        "upgrade.effects_updated",
        "upgrade.compensation_recorded",
        "upgrade.compensation_resolved",
        "upgrade.player_reset",
        "audit.transaction.logged",
    ):
        event_bus.subscribe(name, _make_listener(name))
    return events


# ============================================================================
# GAMECORE DOUBLE
# ============================================================================


class FakeGameCore:
    """
    In-memory stand-in for `GameCoreClient`.

    Holds one score per player and applies deductions. Individual calls can
    be scripted to fail by assigning an exception (or False) to the
    `*_error` / `deduct_result` attributes.
    """

    def __init__(self) -> None:
        self.scores: Dict[uuid.UUID, Decimal] = {}
        self.click_counts: Dict[uuid.UUID, Decimal] = {}
        self.deductions: List[Dict[str, Any]] = []
        self.applied_effects: List[EffectUpdate] = []
        self.session_error: Optional[GameCoreError] = None
        self.deduct_error: Optional[BaseException] = None
        self.deduct_result: Optional[bool] = None
        self.apply_error: Optional[GameCoreError] = None

    def set_score(self, player_id: uuid.UUID, score: Any, clicks: Any = 0) -> None:
        self.scores[player_id] = to_big(score)
        self.click_counts[player_id] = to_big(clicks)

    async def get_session(self, player_id: uuid.UUID) -> Optional[GameSessionInfo]:
        if self.session_error is not None:
            raise self.session_error
        if player_id not in self.scores:
            return None
        return GameSessionInfo(
            session_id=f"session-{player_id}",
            player_id=player_id,
            player_username="tester",
            score=self.scores[player_id],
            click_count=self.click_counts.get(player_id, Decimal(0)),
            click_power=Decimal(1),
            passive_income_per_second=Decimal(0),
            is_active=True,
        )

    async def get_score(self, player_id: uuid.UUID) -> Decimal:
        return self.scores[player_id]

    async def validate_session(self, player_id: uuid.UUID) -> bool:
        return player_id in self.scores

    async def deduct_score(self, player_id: uuid.UUID, amount: Decimal, reason: str) -> bool:
        if self.deduct_error is not None:
            raise self.deduct_error
        if self.deduct_result is False:
            return False
        if self.scores.get(player_id, Decimal(0)) < amount:
            return False
        self.scores[player_id] -= amount
        self.deductions.append({"player_id": player_id, "amount": amount, "reason": reason})
        return True

    async def apply_effects(self, player_id: uuid.UUID, update: EffectUpdate) -> bool:
        if self.apply_error is not None:
            raise self.apply_error
        self.applied_effects.append(update)
        return True


@pytest.fixture
def game_core() -> FakeGameCore:
    return FakeGameCore()


# ============================================================================
# DATABASE FIXTURES (Integration Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[type[DatabaseService], None]:
    """
    Real DatabaseService on in-memory aiosqlite with a fresh schema.

    Scope: function
    """
    await DatabaseService.shutdown()
    await DatabaseService.initialize(SQLITE_MEMORY_URL)
    await DatabaseService.create_schema()
    yield DatabaseService
    await DatabaseService.shutdown()


def start_postgres_container(testcontainers_postgres: Any) -> Any:
    """
    Build and start a PostgreSQL container, skipping the caller when docker
    cannot be reached. The constructor contacts the daemon too.
    """
    try:
        container = testcontainers_postgres.PostgresContainer(
            image="postgres:17-alpine",
            driver="asyncpg",
        )
        container.start()
    except Exception as exc:
        pytest.skip(f"PostgreSQL testcontainer unavailable: {exc}")
    return container


@pytest.fixture(scope="session")
def postgres_url() -> Generator[str, None, None]:
    """
    Start a PostgreSQL testcontainer and return its asyncpg URL.

    Scope: session (container persists across all tests)
    Skips when docker is unavailable.
    """
    testcontainers_postgres = pytest.importorskip("testcontainers.postgres")
    container = start_postgres_container(testcontainers_postgres)

    url = container.get_connection_url()
    logger.info("PostgreSQL testcontainer started", extra={"url_scheme": url.split(":", 1)[0]})
    yield url

    container.stop()
