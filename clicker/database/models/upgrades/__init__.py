"""
Upgrade domain ORM models.

Exports:
- PlayerUpgrade
- UpgradePurchase
- PurchaseCompensation
"""

from clicker.core.database.base import Base

from .player_upgrade import PlayerUpgrade
from .purchase_compensation import PurchaseCompensation
from .upgrade_purchase import UpgradePurchase

__all__ = [
    "Base",
    "PlayerUpgrade",
    "PurchaseCompensation",
    "UpgradePurchase",
]
