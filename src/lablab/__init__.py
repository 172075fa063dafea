"""
lablab — participant runtime for multi-stage behavioral-economics experiments.

## Packages
- core — zero-IO contracts: grammar enums, pydantic schemas, ids, errors, constants.
- io — file-backed collaborators (experiment store, scenario/wallet source, progress
  store, survey responses), settings loader, and polars reports.
- runtime — the experiment run controller, stage gates, countdowns, and the
  retry/backoff/fallback fetch policy.
- lab — operator CLI (seed demo data, show progress and responses).

## Import DAG discipline
- core depends on stdlib + pydantic only.
- io depends on core (and polars for reports).
- runtime depends on core and io.config (settings); collaborators are injected (see
  runtime.protocols).
- lab depends on io; the Streamlit app lives in the separate `app` package and wires io
  stores into the runtime.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
