import json
from pathlib import Path

# Built-in reductions live in overline_utils/aggregate.py (REDUCTIONS)
DEFAULT_REDUCTION = "sum"

# 0 means exact coordinate matching
DEFAULT_TOLERANCE = 0.0

# Relative tolerance used when comparing aggregated values during re-linearization
DEFAULT_VALUE_REL_TOL = 1e-9

# Path to default overline parameters JSON
OVERLINE_PARAMS_PATH = Path(__file__).parent / "overline_parameters.json"


def load_overline_params(path: str | Path = OVERLINE_PARAMS_PATH) -> dict:
    """Load overline parameters (columns, reduction, tolerances)."""
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
