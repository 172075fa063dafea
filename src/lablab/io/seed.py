"""
Demo content for a fresh document store.

``seed_demo(settings)`` writes one experiment that exercises every stage kind
(instructions, break, scenario, survey), the scenario it references and that
scenario's wallet. Documents are written in the camelCase shape the admin screens
produce and are validated through the core models before being stored.
"""

from __future__ import annotations

import logging
from typing import Any, Final

from lablab.core.schema import Experiment, Scenario, WalletAsset
from lablab.core.serde import to_document

from .config import LabSettings
from .documents import DocumentStore
from .paths import Collection

__all__ = ["DEMO_EXPERIMENT_ID", "DEMO_SCENARIO_ID", "DEMO_WALLET_ID", "demo_documents", "seed_demo"]

logger = logging.getLogger(__name__)

DEMO_EXPERIMENT_ID: Final[str] = "demo_experiment"
DEMO_SCENARIO_ID: Final[str] = "demo_scenario"
DEMO_WALLET_ID: Final[str] = "demo_wallet"


def demo_documents() -> dict[Collection, dict[str, Any]]:
    """Validated demo documents keyed by collection then id."""
    experiment = Experiment.model_validate(
        {
            "id": DEMO_EXPERIMENT_ID,
            "name": "Market Intuitions",
            "description": "A short walkthrough of a three-round trading scenario.",
            "stages": [
                {
                    "id": "welcome",
                    "type": "instructions",
                    "title": "Welcome",
                    "order": 0,
                    "content": (
                        "You will watch a small portfolio over three trading rounds, "
                        "then answer a few questions about what you saw."
                    ),
                },
                {
                    "id": "pause",
                    "type": "break",
                    "title": "Short pause",
                    "order": 1,
                    "durationSeconds": 5,
                },
                {
                    "id": "market",
                    "type": "scenario",
                    "title": "Trading rounds",
                    "order": 2,
                    "scenarioId": DEMO_SCENARIO_ID,
                },
                {
                    "id": "debrief",
                    "type": "survey",
                    "title": "Debrief",
                    "order": 3,
                    "questions": [
                        {
                            "id": "confidence",
                            "text": "How confident were you in your portfolio?",
                            "type": "scale",
                            "required": True,
                            "minValue": 1,
                            "maxValue": 7,
                            "order": 0,
                        },
                        {
                            "id": "best_asset",
                            "text": "Which asset performed best?",
                            "type": "multipleChoice",
                            "required": True,
                            "options": ["ACME", "GLOBEX"],
                            "order": 1,
                        },
                        {
                            "id": "signals",
                            "text": "What did you pay attention to?",
                            "type": "checkboxes",
                            "options": ["Price level", "Round-over-round change", "Portfolio total"],
                            "order": 2,
                        },
                        {
                            "id": "enjoyment",
                            "text": "Rate the experience",
                            "type": "rating",
                            "order": 3,
                        },
                        {
                            "id": "comments",
                            "text": "Anything else?",
                            "type": "textarea",
                            "order": 4,
                        },
                    ],
                },
            ],
        }
    )
    scenario = Scenario.model_validate(
        {
            "id": DEMO_SCENARIO_ID,
            "name": "Two-asset drift",
            "walletId": DEMO_WALLET_ID,
            "rounds": 3,
            "roundDuration": 10,
            "assetPrices": [
                {"assetId": "acme", "symbol": "ACME", "prices": [100.0, 104.0, 98.5]},
                {"assetId": "globex", "symbol": "GLOBEX", "prices": [50.0, 49.0, 55.5]},
            ],
        }
    )
    assets = [
        WalletAsset(id="acme", symbol="ACME", name="Acme Corp", amount=10, initial_amount=10, type="share"),
        WalletAsset(id="globex", symbol="GLOBEX", name="Globex", amount=20, initial_amount=20, type="share"),
    ]
    return {
        Collection.EXPERIMENTS: {experiment.id: to_document(experiment)},
        Collection.SCENARIOS: {scenario.id: to_document(scenario)},
        Collection.WALLETS: {DEMO_WALLET_ID: {"assets": [to_document(a) for a in assets]}},
    }


def seed_demo(settings: LabSettings, overwrite: bool = False) -> list[str]:
    """
    Write the demo documents under ``settings.root_dir``.

    Args:
        settings (LabSettings): Target store.
        overwrite (bool): Replace documents that already exist.

    Returns:
        list[str]: Paths written (existing documents are skipped unless overwrite).
    """
    store = DocumentStore(settings)
    written: list[str] = []
    for collection, docs in demo_documents().items():
        for doc_id, doc in docs.items():
            if not overwrite and store.get(collection, doc_id) is not None:
                logger.info("skipping existing %s/%s", collection.value, doc_id)
                continue
            written.append(store.put(collection, doc_id, doc))
    return written
