"""
LabLab core runtime defaults.

Defines retry/backoff bounds, progress-write retry defaults, scenario limits and the
built-in fallback basket used when the scenario/wallet data source is unavailable.
This module is zero-IO and uses only the Python standard library.

Notes:
    - Runtime settings (lablab.io.config.LabSettings) source their defaults from here.
    - The fallback basket is deliberately small and static; substituting it is an
      availability-over-accuracy decision and is always logged by the runtime.
"""

from __future__ import annotations

from typing import Any, Final

__all__ = [
    "MAX_FETCH_ATTEMPTS_CAP",
    "DEFAULT_FETCH_ATTEMPTS",
    "DEFAULT_BASE_DELAY_S",
    "DEFAULT_MAX_DELAY_S",
    "DEFAULT_ATTEMPT_TIMEOUT_S",
    "DEFAULT_PROGRESS_ATTEMPTS",
    "DEFAULT_PROGRESS_BASE_DELAY_S",
    "DEFAULT_PROGRESS_MAX_DELAY_S",
    "DEFAULT_WRITE_TIMEOUT_S",
    "SERVICE_UNAVAILABLE",
    "NOT_FOUND",
    "MIN_ROUNDS",
    "MAX_ROUNDS",
    "MIN_ROUND_DURATION_S",
    "MAX_ROUND_DURATION_S",
    "FALLBACK_WALLET_ID",
    "FALLBACK_SCENARIO_ID",
    "FALLBACK_ROUNDS",
    "FALLBACK_ROUND_DURATION_S",
    "FALLBACK_ASSETS",
    "FALLBACK_PRICE_SERIES",
    "TICK_SECONDS",
]

# Hard upper bound on attempts for any single scenario/wallet fetch.
MAX_FETCH_ATTEMPTS_CAP: Final[int] = 10

DEFAULT_FETCH_ATTEMPTS: Final[int] = 5
DEFAULT_BASE_DELAY_S: Final[float] = 0.5
DEFAULT_MAX_DELAY_S: Final[float] = 8.0
DEFAULT_ATTEMPT_TIMEOUT_S: Final[float] = 10.0

# Background retry of progress writes (never blocks the participant).
DEFAULT_PROGRESS_ATTEMPTS: Final[int] = 8
DEFAULT_PROGRESS_BASE_DELAY_S: Final[float] = 1.0
DEFAULT_PROGRESS_MAX_DELAY_S: Final[float] = 30.0

# Upper bound on a single progress/survey write.
DEFAULT_WRITE_TIMEOUT_S: Final[float] = 15.0

SERVICE_UNAVAILABLE: Final[int] = 503
NOT_FOUND: Final[int] = 404

MIN_ROUNDS: Final[int] = 1
MAX_ROUNDS: Final[int] = 50
MIN_ROUND_DURATION_S: Final[int] = 5
MAX_ROUND_DURATION_S: Final[int] = 300

# One countdown tick.
TICK_SECONDS: Final[int] = 1

FALLBACK_WALLET_ID: Final[str] = "fallback_wallet"
FALLBACK_SCENARIO_ID: Final[str] = "fallback_scenario"
FALLBACK_ROUNDS: Final[int] = 5
FALLBACK_ROUND_DURATION_S: Final[int] = 60

FALLBACK_ASSETS: Final[tuple[dict[str, Any], ...]] = (
    {
        "id": "fallback_asset_btc",
        "symbol": "BTC",
        "name": "Bitcoin",
        "type": "cryptocurrency",
        "amount": 0.5,
        "initial_amount": 0.5,
    },
    {
        "id": "fallback_asset_aapl",
        "symbol": "AAPL",
        "name": "Apple Inc.",
        "type": "share",
        "amount": 10.0,
        "initial_amount": 10.0,
    },
    {
        "id": "fallback_asset_eth",
        "symbol": "ETH",
        "name": "Ethereum",
        "type": "cryptocurrency",
        "amount": 5.0,
        "initial_amount": 5.0,
    },
)

# Ten rounds per asset; longer scenarios clamp to the last price.
FALLBACK_PRICE_SERIES: Final[dict[str, tuple[float, ...]]] = {
    "BTC": (42000.0, 42850.0, 41900.0, 43400.0, 44100.0, 43250.0, 45000.0, 44600.0, 46200.0, 45800.0),
    "AAPL": (185.0, 186.4, 184.9, 187.2, 189.0, 188.1, 190.5, 189.7, 192.3, 191.6),
    "ETH": (2250.0, 2290.0, 2215.0, 2340.0, 2385.0, 2330.0, 2420.0, 2395.0, 2480.0, 2455.0),
}
