# lnpredict/config.py

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple, Union

# Classifier variants in the order they are reported; matches the registry
# in analysis.classification.
DEFAULT_VARIANTS: Tuple[str, ...] = (
    "knn",
    "lda",
    "svm",
    "elastic_net",
    "random_forest",
    "neural_net",
    "pknn",
)


@dataclass(frozen=True)
class StudyConfig:
    """
    Settings for one cross-validated model comparison.

    :param n_splits: folds per repeat (K)
    :param n_repeats: independent stratified K-fold repeats (R)
    :param top_n: genes kept per fold from the moderated t ranking
    :param seed: seed for fold generation and the stochastic classifiers
    :param variants: classifier variants to compare
    :param n_jobs: joblib workers for the variant x fold grid
    :param strict_convergence: treat ConvergenceWarning as a failed cell
    :param positive_label: label value of the positive (node-positive) class
    :param report_top_genes: rows written to the whole-training gene report
    :param test_size: test fraction when the metadata carries no split column
    """
    n_splits: int = 6
    n_repeats: int = 10
    top_n: int = 50
    seed: int = 42
    variants: Tuple[str, ...] = field(default=DEFAULT_VARIANTS)
    n_jobs: int = 1
    strict_convergence: bool = False
    positive_label: Union[int, str] = 1
    report_top_genes: int = 50
    test_size: float = 0.2

    def __post_init__(self) -> None:
        # lists coming from JSON are frozen into tuples
        object.__setattr__(self, "variants", tuple(self.variants))
        if self.n_splits < 2:
            raise ValueError(f"n_splits must be at least 2, got {self.n_splits}")
        if self.n_repeats < 1:
            raise ValueError(f"n_repeats must be at least 1, got {self.n_repeats}")
        if self.top_n < 1:
            raise ValueError(f"top_n must be positive, got {self.top_n}")
        if not self.variants:
            raise ValueError("at least one classifier variant is required")
        unknown = [v for v in self.variants if v not in DEFAULT_VARIANTS]
        if unknown:
            raise ValueError(
                f"Unknown classifier variant(s) {unknown}. Available: {list(DEFAULT_VARIANTS)}"
            )
        if not 0.0 < self.test_size < 1.0:
            raise ValueError(f"test_size must be in (0, 1), got {self.test_size}")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "StudyConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        return cls(**values)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "StudyConfig":
        """
        Load settings from a JSON object; missing keys keep their defaults.

        :raises FileNotFoundError: if the file doesn't exist
        """
        fp = Path(path)
        if not fp.exists():
            raise FileNotFoundError(f"no such file: {fp}")
        with open(fp) as f:
            return cls.from_dict(json.load(f))

    def replace(self, **overrides: Any) -> "StudyConfig":
        """Copy with the given fields changed; None values are ignored."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        out = dataclasses.asdict(self)
        out["variants"] = list(self.variants)
        return out
