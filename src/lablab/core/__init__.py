"""
Core package aggregator for LabLab contracts (grammar, schemas, serde, ids, errors, constants).

## Contracts (single source of truth)
- Grammar — stage/question/status enums and normalization helpers.
- Schemas — pydantic models for experiments, stages, scenarios, wallets, progress, responses.
- Serde — canonical JSON and model <-> document conversion.
- Typing — typed ids and answer aliases.
- Errors/Constants — failure taxonomy, retry defaults, fallback basket.

## Notes
- Zero-IO policy: stdlib + pydantic only; no file/network IO.
- Naming policy: enum `.value` and field names are lower_snake; documents use camelCase aliases.

## Downstream usage
- lablab.io — validates stored documents into these models and merges progress with
  `schema.apply_progress_update`.
- lablab.runtime — drives gates off `Stage` variants and reports failures with `errors`.
- app — renders stages and answers from the same models.

## Examples
```python
from lablab.core.schema import Experiment
exp = Experiment.model_validate({
    "id": "e1",
    "name": "Demo",
    "stages": [{"id": "s1", "type": "break", "title": "Pause", "durationSeconds": 5}],
})
exp.stages[0].kind  # StageKind.BREAK
```
"""
