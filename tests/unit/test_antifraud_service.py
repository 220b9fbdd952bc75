"""
Unit tests for AntiFraudService.

Purchase history is served by a mocked UpgradePurchaseRepository; each test
switches on one or more risk signals and checks the resulting verdict.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from clicker.core.logging.logger import get_logger
from clicker.modules.upgrade.antifraud_service import (
    ACTION_ALLOW,
    ACTION_BLOCK,
    ACTION_FLAG,
    ACTION_MONITOR,
    AntiFraudService,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def purchase_repo(mocker):
    repo = mocker.MagicMock()
    repo.count_since = mocker.AsyncMock(return_value=0)
    repo.average_cost = mocker.AsyncMock(return_value=None)
    repo.recent_for_player = mocker.AsyncMock(return_value=[])
    return repo


@pytest.fixture
def antifraud(config_manager, mock_event_bus, purchase_repo):
    return AntiFraudService(
        config_manager, mock_event_bus, get_logger(__name__), purchase_repo=purchase_repo
    )


def _evenly_spaced(count, seconds):
    """Purchases newest first, `seconds` apart."""
    return [SimpleNamespace(purchased_at=NOW - timedelta(seconds=i * seconds)) for i in range(count)]


@pytest.mark.unit
class TestRiskSignals:
    """Individual signals and their weights."""

    async def test_clean_history_is_allowed(self, antifraud, make_context):
        assessment = await antifraud.assess(
            None, make_context(score=100), "click_power_1", 1, Decimal(10), now=NOW
        )

        assert assessment.risk_score == 0.0
        assert not assessment.is_suspicious
        assert not assessment.should_block
        assert assessment.reasons == []
        assert assessment.recommended_action == ACTION_ALLOW

    async def test_rapid_purchasing_alone_is_not_suspicious(
        self, antifraud, purchase_repo, make_context
    ):
        purchase_repo.count_since.return_value = 11

        assessment = await antifraud.assess(
            None, make_context(score=100), "click_power_1", 1, Decimal(10), now=NOW
        )

        assert assessment.risk_score == 0.3
        assert assessment.reasons == ["Rapid purchasing pattern detected"]
        assert not assessment.is_suspicious

    async def test_rapid_and_regular_timing_is_flagged(
        self, antifraud, purchase_repo, make_context
    ):
        purchase_repo.count_since.return_value = 11
        purchase_repo.recent_for_player.return_value = _evenly_spaced(5, 5)

        assessment = await antifraud.assess(
            None, make_context(score=100), "click_power_1", 1, Decimal(10), now=NOW
        )

        assert assessment.risk_score == 0.6
        assert assessment.is_suspicious
        assert not assessment.should_block
        assert assessment.recommended_action == ACTION_FLAG

    async def test_negative_score_blocks(self, antifraud, make_context):
        assessment = await antifraud.assess(
            None, make_context(score=-5), "click_power_1", 1, Decimal(10), now=NOW
        )

        assert assessment.should_block
        assert assessment.recommended_action == ACTION_BLOCK
        assert "Negative player score detected" in assessment.reasons

    async def test_outsized_purchase(self, antifraud, purchase_repo, make_context):
        purchase_repo.average_cost.return_value = Decimal(10)

        assessment = await antifraud.assess(
            None, make_context(score=10_000), "click_power_1", 1, Decimal(101), now=NOW
        )

        assert assessment.reasons == ["Purchase amount significantly higher than average"]
        assert assessment.risk_score == 0.2

    async def test_outsized_ignores_infinite_estimate(self, antifraud, purchase_repo, make_context):
        purchase_repo.average_cost.return_value = Decimal(10)

        assessment = await antifraud.assess(
            None, make_context(score=10_000), "golden", 2, Decimal("Infinity"), now=NOW
        )

        assert assessment.reasons == []

    async def test_low_level_player_buying_many_levels(self, antifraud, make_context):
        assessment = await antifraud.assess(
            None, make_context(score=10_000, player_level=1), "click_power_1", 60, Decimal(10), now=NOW
        )

        assert assessment.reasons == ["High-value purchase from low-level player"]
        assert assessment.risk_score == 0.4

    async def test_irregular_timing_is_not_flagged(self, antifraud, purchase_repo, make_context):
        purchase_repo.recent_for_player.return_value = [
            SimpleNamespace(purchased_at=NOW - timedelta(seconds=s)) for s in (0, 2, 9, 10, 30)
        ]

        assessment = await antifraud.assess(
            None, make_context(score=100), "click_power_1", 1, Decimal(10), now=NOW
        )

        assert assessment.reasons == []

    async def test_history_window_uses_configured_minutes(
        self, antifraud, purchase_repo, make_context, player_id
    ):
        await antifraud.assess(None, make_context(score=100), "click_power_1", 1, Decimal(10), now=NOW)

        purchase_repo.count_since.assert_awaited_once_with(None, player_id, NOW - timedelta(minutes=5))

    async def test_average_baseline_uses_configured_sample_size(
        self, antifraud, purchase_repo, make_context, player_id
    ):
        await antifraud.assess(None, make_context(score=100), "click_power_1", 1, Decimal(10), now=NOW)

        purchase_repo.average_cost.assert_awaited_once_with(None, player_id, 100)


@pytest.mark.unit
class TestFailureModes:
    """Scoring failures and disabled scoring."""

    async def test_repository_error_fails_open_but_flagged(
        self, antifraud, purchase_repo, make_context, caplog
    ):
        purchase_repo.count_since.side_effect = RuntimeError("connection reset")

        assessment = await antifraud.assess(
            None, make_context(score=100), "click_power_1", 1, Decimal(10), now=NOW
        )

        assert assessment.risk_score == 0.5
        assert assessment.is_suspicious
        assert not assessment.should_block
        assert assessment.recommended_action == ACTION_MONITOR
        assert any(r.getMessage() == "Error during fraud check" for r in caplog.records)

    async def test_disabled_scoring_allows_everything(self, mocker, mock_event_bus, purchase_repo, make_context):
        config = mocker.MagicMock()
        config.get = lambda key, default=None: False if key == "upgrades.fraud.enabled" else default
        antifraud = AntiFraudService(config, mock_event_bus, get_logger(__name__), purchase_repo=purchase_repo)

        assessment = await antifraud.assess(
            None, make_context(score=-5), "click_power_1", 1, Decimal(10), now=NOW
        )

        assert not assessment.should_block
        purchase_repo.count_since.assert_not_awaited()
