# lnpredict/io/writers.py

import json
import math
from pathlib import Path
from typing import Any, Dict, List, Union
import joblib
import numpy as np
import pandas as pd


def _ensure_parent(path: Union[str, Path]) -> Path:
    fp = Path(path)
    fp.parent.mkdir(parents=True, exist_ok=True)
    return fp


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def save_model(
    model: Any,
    path: Union[str, Path]
) -> None:
    """
    Persist a fitted model to disk via joblib.
    """
    joblib.dump(model, _ensure_parent(path))


def save_features(
    features: List[str],
    path: Union[str, Path]
) -> None:
    """
    Save selected gene list to JSON.
    """
    with open(_ensure_parent(path), 'w') as f:
        json.dump(list(features), f, indent=2)


def save_json(
    data: Dict[str, Any],
    path: Union[str, Path]
) -> None:
    """
    Save a dict to JSON; NaN and infinities are written as null.
    """
    with open(_ensure_parent(path), 'w') as f:
        json.dump(_jsonable(data), f, indent=2)


def save_table(
    df: pd.DataFrame,
    path: Union[str, Path],
    index: bool = True
) -> None:
    df.to_csv(_ensure_parent(path), index=index)
