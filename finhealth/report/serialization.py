"""JSON-safe rendering of engine results.

Reports are rendered deterministically: keys keep insertion order,
NaN/Inf become ``null``, numpy scalars become Python numbers, enums
their values and datetimes ISO-8601 strings.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

import numpy as np
import pandas as pd


def _safe_float(val: Any) -> float | None:
    """Convert a value to a JSON-safe float (None for NaN/Inf)."""
    if val is None:
        return None
    try:
        f = float(val)
        if math.isnan(f) or math.isinf(f):
            return None
        return f
    except (TypeError, ValueError):
        return None


def json_serialisable(obj: Any) -> Any:
    """Recursively convert numpy/pandas/enum types for JSON serialisation."""
    if isinstance(obj, Mapping):
        return {str(json_serialisable(k)): json_serialisable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [json_serialisable(v) for v in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (bool, np.bool_)):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (float, np.floating)):
        return _safe_float(obj)
    if isinstance(obj, np.ndarray):
        return json_serialisable(obj.tolist())
    if isinstance(obj, (pd.Timestamp, datetime)):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if hasattr(obj, "to_dict"):
        return json_serialisable(obj.to_dict())
    return obj


def to_json(obj: Any, *, indent: int | None = None) -> str:
    """Serialise *obj* to a JSON string; identical input gives identical bytes."""
    return json.dumps(json_serialisable(obj), indent=indent, allow_nan=False, ensure_ascii=False)
