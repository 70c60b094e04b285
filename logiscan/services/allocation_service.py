from __future__ import annotations

from typing import Iterable

from logiscan.models.logistics_models import Asset
from logiscan.models.statuses import ASSET_AVAILABLE


def _allocation_rank(asset: Asset) -> tuple:
    # Available first, then no pending maintenance, then cheapest unit.
    return (
        0 if asset.Status == ASSET_AVAILABLE else 1,
        1 if asset.NeedsMaintenance else 0,
        float(asset.Value or 0),
    )


def select_best_assets(candidates: Iterable[Asset], quantity: int) -> list[Asset]:
    if quantity <= 0:
        return []
    ranked = sorted(candidates, key=_allocation_rank)
    return ranked[:quantity]
