from __future__ import annotations

import dataclasses
import math
from typing import Any

import numpy as np


def _float(value: float) -> Any:
    if math.isnan(value):
        return None
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return value


def to_jsonable(obj: Any) -> Any:
    """
    Convert results into plain JSON-safe structures.

    Dataclasses become dicts, tuples become lists, infinities become the strings
    "inf" / "-inf" and callables (strategy factories) are dropped.
    """
    if obj is None or isinstance(obj, (bool, str, int)):
        return obj
    if isinstance(obj, float):
        return _float(obj)
    if isinstance(obj, np.generic):
        return to_jsonable(obj.item())
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: to_jsonable(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
            if not callable(getattr(obj, f.name))
        }
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items() if not callable(v)}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj if not callable(v)]
    if callable(obj):
        return None
    return str(obj)


__all__ = ["to_jsonable"]
