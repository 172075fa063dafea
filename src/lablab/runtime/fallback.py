"""
Built-in substitute data for scenario stages.

Used when the scenario/wallet data source cannot deliver within the retry budget. The
basket and its price series come from lablab.core.constants; the round count and round
length honour the stage's own hints when it has them.
"""

from __future__ import annotations

from lablab.core.constants import (
    FALLBACK_ASSETS,
    FALLBACK_PRICE_SERIES,
    FALLBACK_ROUND_DURATION_S,
    FALLBACK_ROUNDS,
    FALLBACK_SCENARIO_ID,
    FALLBACK_WALLET_ID,
)
from lablab.core.schema import AssetPrice, Scenario, ScenarioStage, WalletAsset

__all__ = ["fallback_wallet_assets", "fallback_scenario", "fallback_series_for"]


def fallback_wallet_assets() -> list[WalletAsset]:
    return [WalletAsset.model_validate(a) for a in FALLBACK_ASSETS]


def fallback_series_for(symbol: str) -> AssetPrice | None:
    """Fallback price series for a ticker, or None if the basket has no such asset."""
    for a in FALLBACK_ASSETS:
        if a["symbol"] == symbol:
            return AssetPrice(
                asset_id=a["id"], symbol=symbol, prices=list(FALLBACK_PRICE_SERIES[symbol])
            )
    return None


def fallback_scenario(stage: ScenarioStage | None = None) -> Scenario:
    """
    Substitute scenario for ``stage``.

    Rounds and round length default to FALLBACK_ROUNDS x FALLBACK_ROUND_DURATION_S unless
    the stage carries ``rounds`` / ``round_duration`` hints.
    """
    rounds = FALLBACK_ROUNDS
    round_duration = FALLBACK_ROUND_DURATION_S
    if stage is not None:
        rounds = stage.rounds or rounds
        round_duration = stage.round_duration or round_duration
    prices = [fallback_series_for(a["symbol"]) for a in FALLBACK_ASSETS]
    return Scenario(
        id=FALLBACK_SCENARIO_ID,
        name="Sample market",
        description="Sample data shown while the market data service is unavailable.",
        wallet_id=FALLBACK_WALLET_ID,
        rounds=rounds,
        round_duration=round_duration,
        asset_prices=[p for p in prices if p is not None],
    )
