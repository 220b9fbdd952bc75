"""
Upgrade ledger behaviour on PostgreSQL (testcontainers).

Skipped when docker is unavailable.
"""

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from clicker.core.database.service import DatabaseService
from clicker.core.logging.logger import get_logger
from clicker.database.models import PlayerUpgrade, UpgradePurchase
from clicker.modules.upgrade.repository import PlayerUpgradeRepository


@pytest_asyncio.fixture
async def pg_database(postgres_url):
    await DatabaseService.shutdown()
    await DatabaseService.initialize(postgres_url)
    await DatabaseService.drop_schema()
    await DatabaseService.create_schema()
    yield DatabaseService
    await DatabaseService.shutdown()


@pytest.mark.integration
@pytest.mark.database
class TestPostgresLedger:
    async def test_health_and_statement_timeout(self, pg_database):
        assert await pg_database.health_check()
        async with pg_database.get_transaction() as session:
            await session.execute(select(PlayerUpgrade.id).limit(1))

    async def test_unique_ownership(self, pg_database, player_id):
        async with pg_database.get_transaction() as session:
            session.add(PlayerUpgrade(player_id=player_id, upgrade_id="click_power_1", level=1))

        with pytest.raises(IntegrityError):
            async with pg_database.get_transaction() as session:
                session.add(PlayerUpgrade(player_id=player_id, upgrade_id="click_power_1", level=1))

    async def test_level_check_constraint(self, pg_database, player_id):
        with pytest.raises(IntegrityError):
            async with pg_database.get_transaction() as session:
                session.add(PlayerUpgrade(player_id=player_id, upgrade_id="click_power_1", level=0))

    async def test_row_lock_and_big_cost(self, pg_database, player_id):
        repo = PlayerUpgradeRepository(get_logger(__name__))
        async with pg_database.get_transaction() as session:
            session.add(PlayerUpgrade(player_id=player_id, upgrade_id="multiplier_1", level=2))
            session.add(
                UpgradePurchase(
                    player_id=player_id,
                    upgrade_id="multiplier_1",
                    levels=2,
                    cost=Decimal("9.99e1000"),
                    transaction_id="tx-pg",
                )
            )

        async with pg_database.get_transaction() as session:
            record = await repo.find_entry(session, player_id, "multiplier_1", for_update=True)
            assert record is not None
            record.level += 1

        async with pg_database.get_session() as session:
            level = (await session.execute(select(PlayerUpgrade.level))).scalar_one()
            cost = (await session.execute(select(UpgradePurchase.cost))).scalar_one()

        assert level == 3
        assert cost == Decimal("9.99e1000")
