"""
Altair charts for the scenario stage.

Frames are built with polars from a ScenarioGate (rounds 1..current only, so the chart
never reveals future prices) and handed to Altair as inline values.
"""

from __future__ import annotations

import altair as alt
import polars as pl

from lablab.runtime.gates import ScenarioGate

PRICE_SCHEMA: dict[str, pl.DataType] = {
    "round": pl.Int64(),
    "symbol": pl.Utf8(),
    "price": pl.Float64(),
}
PORTFOLIO_SCHEMA: dict[str, pl.DataType] = {"round": pl.Int64(), "value": pl.Float64()}


# Uniform chart defaults
def _apply_chart_defaults(ch: alt.TopLevelMixin) -> alt.TopLevelMixin:
    return (
        ch.configure_axis(labelFontSize=12, titleFontSize=12, grid=True)
        .configure_legend(labelFontSize=12, titleFontSize=12)
        .configure_title(fontSize=14)
        .configure_view(strokeOpacity=0)
    )


def _placeholder(text: str) -> alt.TopLevelMixin:
    return alt.Chart(alt.Data(values=[{}])).mark_text().encode(text=alt.value(text))


# ----------------------------
# Frames
# ----------------------------


def price_frame(gate: ScenarioGate) -> pl.DataFrame:
    """Long frame of (round, symbol, price) for every held asset up to the current round."""
    rows = [
        {"round": r, "symbol": asset.symbol, "price": price}
        for asset in gate.assets
        for r in range(1, gate.round + 1)
        if (price := gate.current_price(asset, r)) is not None
    ]
    if not rows:
        return pl.DataFrame(schema=PRICE_SCHEMA)
    return pl.DataFrame(rows, schema=PRICE_SCHEMA).sort(["symbol", "round"])


def portfolio_frame(gate: ScenarioGate) -> pl.DataFrame:
    """Portfolio value per round up to the current round."""
    rows = [{"round": r, "value": gate.portfolio_value(r)} for r in range(1, gate.round + 1)]
    if not rows:
        return pl.DataFrame(schema=PORTFOLIO_SCHEMA)
    return pl.DataFrame(rows, schema=PORTFOLIO_SCHEMA)


def holdings_frame(gate: ScenarioGate) -> pl.DataFrame:
    """One row per holding with current price, previous price and value."""
    rows = []
    for asset in gate.assets:
        price = gate.current_price(asset)
        prev = gate.previous_price(asset)
        rows.append(
            {
                "symbol": asset.symbol,
                "name": asset.name,
                "amount": asset.amount,
                "price": price,
                "change": None if price is None or prev is None else price - prev,
                "value": None if price is None else asset.amount * price,
            }
        )
    return pl.DataFrame(
        rows,
        schema={
            "symbol": pl.Utf8(),
            "name": pl.Utf8(),
            "amount": pl.Float64(),
            "price": pl.Float64(),
            "change": pl.Float64(),
            "value": pl.Float64(),
        },
    )


# ----------------------------
# Charts
# ----------------------------


def price_chart(df: pl.DataFrame, *, total_rounds: int | None = None) -> alt.TopLevelMixin:
    """Line + point chart of prices by round, one color per symbol."""
    if df.is_empty():
        return _apply_chart_defaults(_placeholder("No prices yet"))
    x_scale = alt.Scale(domain=[1, total_rounds]) if total_rounds else alt.Undefined
    base = alt.Chart(alt.Data(values=df.to_dicts())).encode(
        x=alt.X("round:Q", title="Round", scale=x_scale, axis=alt.Axis(tickMinStep=1)),
        y=alt.Y("price:Q", title="Price", scale=alt.Scale(zero=False)),
        color=alt.Color("symbol:N", title="Asset"),
        tooltip=[
            alt.Tooltip("symbol:N", title="Asset"),
            alt.Tooltip("round:Q", title="Round"),
            alt.Tooltip("price:Q", title="Price", format=",.2f"),
        ],
    )
    ch = alt.layer(base.mark_line(), base.mark_point(filled=True)).properties(
        title="Prices by round", height=260
    )
    return _apply_chart_defaults(ch)


def portfolio_chart(df: pl.DataFrame, *, total_rounds: int | None = None) -> alt.TopLevelMixin:
    """Area chart of portfolio value by round."""
    if df.is_empty():
        return _apply_chart_defaults(_placeholder("No portfolio data yet"))
    x_scale = alt.Scale(domain=[1, total_rounds]) if total_rounds else alt.Undefined
    ch = (
        alt.Chart(alt.Data(values=df.to_dicts()))
        .mark_area(line=True, opacity=0.3)
        .encode(
            x=alt.X("round:Q", title="Round", scale=x_scale, axis=alt.Axis(tickMinStep=1)),
            y=alt.Y("value:Q", title="Portfolio value", scale=alt.Scale(zero=False)),
            tooltip=[
                alt.Tooltip("round:Q", title="Round"),
                alt.Tooltip("value:Q", title="Value", format=",.2f"),
            ],
        )
        .properties(title="Portfolio value", height=200)
    )
    return _apply_chart_defaults(ch)
