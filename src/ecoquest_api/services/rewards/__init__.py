"""Sponsor reward catalog and redemption engine."""

from .catalog import CatalogStats, RewardCatalog, RewardView, ensure_redeemable  # noqa: F401
from .redemptions import CancelResult, RedeemResult, RedemptionEngine, RedemptionView  # noqa: F401
