"""
HTTP client for the remote game session service ("GameCore").

GameCore owns the live player session: the spendable score, click count and
the effect bonuses applied to clicks. This engine consumes four operations:

- `get_session` / `get_score`: GET  /api/game/session/{player_id}
- `deduct_score`:               POST /api/game/deduct-score
- `apply_effects`:              POST /api/game/apply-upgrade-effects
- `validate_session`:           derived from `get_session`

Delivery semantics
------------------
Every call is at-most-once. Nothing here retries: a deduction that timed out
may or may not have been applied remotely, and repeating it could charge the
player twice. Timeouts raise `GameCoreTimeoutError`; connection failures and
5xx responses raise `GameCoreUnavailableError`. A 4xx on deduction means the
remote side refused (for example insufficient score) and returns False.

Every request carries the current correlation id as `X-Correlation-ID`.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import aiohttp

from clicker.core.config.config import Config
from clicker.core.exceptions import GameCoreTimeoutError, GameCoreUnavailableError
from clicker.core.logging.logger import get_log_context, get_logger, new_correlation_id
from clicker.domain.models.big_number import to_big, to_text

logger = get_logger(__name__)


@dataclass(frozen=True)
class GameSessionInfo:
    session_id: Optional[str]
    player_id: uuid.UUID
    player_username: Optional[str]
    score: Decimal
    click_count: Decimal
    click_power: Decimal
    passive_income_per_second: Decimal
    is_active: bool

    @classmethod
    def from_payload(cls, player_id: uuid.UUID, data: Dict[str, Any]) -> "GameSessionInfo":
        return cls(
            session_id=data.get("sessionId"),
            player_id=player_id,
            player_username=data.get("playerUsername"),
            score=to_big(data.get("score", "0")),
            click_count=to_big(data.get("clickCount", 0)),
            click_power=to_big(data.get("clickPower", 1)),
            passive_income_per_second=to_big(data.get("passiveIncomePerSecond", 0)),
            is_active=bool(data.get("isActive", False)),
        )


@dataclass(frozen=True)
class EffectUpdate:
    """Bonuses pushed to the live session after a purchase."""

    click_power_bonus: Decimal
    passive_income_bonus: Decimal
    multiplier_bonus: Decimal
    source_upgrade_id: Optional[str] = None


class GameCoreClient:
    """
    Async client; one `aiohttp.ClientSession` per client instance.

    >>> async with GameCoreClient() as client:
    ...     score = await client.get_score(player_id)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.base_url = (base_url or Config.GAME_CORE_BASE_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds or Config.GAME_CORE_TIMEOUT_SECONDS
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "GameCoreClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    def _headers() -> Dict[str, str]:
        correlation_id = get_log_context().get("correlation_id") or new_correlation_id()
        return {"X-Correlation-ID": correlation_id, "Accept": "application/json"}

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> tuple[int, Any]:
        """Perform one HTTP call; returns (status, parsed JSON or None)."""
        url = f"{self.base_url}{path}"
        try:
            async with self._get_session().request(
                method, url, json=json_body, headers=self._headers()
            ) as response:
                if response.status >= 500:
                    raise GameCoreUnavailableError(
                        operation, f"server error {response.status}", response.status
                    )
                body: Any = None
                if response.content_type == "application/json":
                    body = await response.json()
                return response.status, body
        except asyncio.TimeoutError as exc:
            logger.warning(
                "GameCore call timed out",
                extra={"game_core_operation": operation, "timeout_seconds": self.timeout_seconds},
            )
            raise GameCoreTimeoutError(operation, self.timeout_seconds) from exc
        except aiohttp.ClientError as exc:
            logger.warning(
                "GameCore call failed",
                extra={
                    "game_core_operation": operation,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise GameCoreUnavailableError(operation, str(exc)) from exc
        except ValueError as exc:
            raise GameCoreUnavailableError(operation, f"malformed JSON body: {exc}") from exc

    # =========================================================================
    # Session reads
    # =========================================================================

    async def get_session(self, player_id: uuid.UUID) -> Optional[GameSessionInfo]:
        """Live session for the player, or None when no session exists."""
        status, body = await self._request(
            "get_session", "GET", f"/api/game/session/{player_id}"
        )
        if status == 404:
            return None
        if status >= 400 or not isinstance(body, dict):
            raise GameCoreUnavailableError("get_session", f"unexpected response {status}", status)
        try:
            return GameSessionInfo.from_payload(player_id, body)
        except ValueError as exc:
            raise GameCoreUnavailableError("get_session", f"malformed session payload: {exc}") from exc

    async def get_score(self, player_id: uuid.UUID) -> Decimal:
        """
        Current spendable score.

        Raises:
            GameCoreUnavailableError: no session or service unreachable
            GameCoreTimeoutError: deadline exceeded
        """
        session = await self.get_session(player_id)
        if session is None:
            raise GameCoreUnavailableError("get_score", "no active game session", 404)
        return session.score

    async def validate_session(self, player_id: uuid.UUID) -> bool:
        session = await self.get_session(player_id)
        return session is not None and session.is_active

    # =========================================================================
    # Mutations (never retried)
    # =========================================================================

    async def deduct_score(self, player_id: uuid.UUID, amount: Decimal, reason: str) -> bool:
        """
        Ask GameCore to deduct `amount` from the player's score.

        Returns False when GameCore refuses the deduction (4xx or an explicit
        `success: false`). Raises on timeout or transport failure, where the
        outcome is unknown.
        """
        status, body = await self._request(
            "deduct_score",
            "POST",
            "/api/game/deduct-score",
            {"playerId": str(player_id), "amount": to_text(amount), "reason": reason},
        )
        if status >= 400:
            logger.info(
                "GameCore refused score deduction",
                extra={"status": status, "amount": to_text(amount)},
            )
            return False
        if isinstance(body, dict) and body.get("success") is False:
            return False
        return True

    async def apply_effects(self, player_id: uuid.UUID, update: EffectUpdate) -> bool:
        status, body = await self._request(
            "apply_effects",
            "POST",
            "/api/game/apply-upgrade-effects",
            {
                "playerId": str(player_id),
                "clickPowerBonus": str(update.click_power_bonus),
                "passiveIncomeBonus": str(update.passive_income_bonus),
                "multiplierBonus": str(update.multiplier_bonus),
                "sourceUpgradeId": update.source_upgrade_id,
            },
        )
        if status >= 400:
            return False
        return not (isinstance(body, dict) and body.get("success") is False)
