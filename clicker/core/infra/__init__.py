"""
Infrastructure services: audit trail publishing and the remote game session
client.
"""

from clicker.core.infra.audit_logger import AuditLogger
from clicker.core.infra.game_core_client import (
    EffectUpdate,
    GameCoreClient,
    GameSessionInfo,
)

__all__ = ["AuditLogger", "GameCoreClient", "GameSessionInfo", "EffectUpdate"]
