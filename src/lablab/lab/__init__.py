"""
lablab.lab — operator command line.

## Commands
- seed-demo — write the demo experiment, scenario and wallet.
- show-progress — participant progress table (or per-status summary).
- show-responses — survey answers in long format.

## Import DAG discipline
- Depends on lablab.io (settings, stores, reports, seed); never on the runtime or app.

## Examples
```bash
lablab seed-demo --root-dir data
lablab show-progress --summary
```
"""
