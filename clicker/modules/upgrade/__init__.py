"""
Upgrade Module
==============

Domain: upgrade catalog, cost/effect progression and purchases

Services:
- UpgradeService: public facade (purchases, recommendations, read models)
- UpgradeCalculationEngine: pure cost/effect/budget calculations
- PurchaseValidationService: nine-stage purchase validation
- AntiFraudService: purchase risk scoring
- PurchaseTransactionService: purchase saga with compensation outbox
"""

from .antifraud_service import AntiFraudService
from .calculation_engine import UpgradeCalculationEngine
from .catalog import UpgradeCatalog
from .service import UpgradeService
from .transaction_service import PurchaseTransactionService
from .validation_service import PurchaseValidationService

__all__ = [
    "AntiFraudService",
    "PurchaseTransactionService",
    "PurchaseValidationService",
    "UpgradeCalculationEngine",
    "UpgradeCatalog",
    "UpgradeService",
]
