# lnpredict/preprocessing/folds.py

from dataclasses import dataclass
from typing import List, Sequence, Union
import numpy as np
import pandas as pd
from sklearn.model_selection import RepeatedStratifiedKFold


class FoldConfigurationError(ValueError):
    """Requested folds cannot be stratified for the given labels."""


@dataclass(frozen=True)
class Fold:
    """
    One (repeat, fold) cell of repeated stratified K-fold.

    Indices are positions into the training cohort.
    """
    repeat: int
    fold: int
    train_idx: np.ndarray
    test_idx: np.ndarray

    @property
    def key(self) -> tuple:
        return (self.repeat, self.fold)


def make_folds(
    labels: Union[pd.Series, Sequence[int], np.ndarray],
    n_splits: int = 6,
    n_repeats: int = 10,
    seed: int = 42
) -> List[Fold]:
    """
    Repeated stratified K-fold partitions of the training cohort.

    Every repeat is an independent shuffle; within a repeat the held-out
    subsets are disjoint and cover all samples, and each keeps the class
    ratio of the cohort to within one sample.

    :param labels: binary label per training sample
    :param n_splits: folds per repeat (K)
    :param n_repeats: number of repeats (R)
    :param seed: random seed, the same seed yields the same folds
    :returns: list of Fold ordered by repeat then fold
    :raises FoldConfigurationError: if K exceeds the minority class size
    """
    y = np.asarray(labels)
    if n_splits < 2:
        raise FoldConfigurationError(f"need at least 2 folds, got {n_splits}")
    if n_repeats < 1:
        raise FoldConfigurationError(f"need at least 1 repeat, got {n_repeats}")
    classes, counts = np.unique(y, return_counts=True)
    if classes.size != 2:
        raise FoldConfigurationError(
            f"stratified folds need two classes, found {classes.tolist()}"
        )
    if n_splits > counts.min():
        raise FoldConfigurationError(
            f"cannot stratify {n_splits} folds: class {classes[counts.argmin()]!r} "
            f"has only {counts.min()} samples"
        )

    cv = RepeatedStratifiedKFold(n_splits=n_splits, n_repeats=n_repeats, random_state=seed)
    placeholder = np.zeros((y.shape[0], 1))
    folds = []
    for i, (train_idx, test_idx) in enumerate(cv.split(placeholder, y)):
        folds.append(Fold(
            repeat=i // n_splits,
            fold=i % n_splits,
            train_idx=train_idx,
            test_idx=test_idx,
        ))
    return folds


def check_folds(
    labels: Union[pd.Series, Sequence[int], np.ndarray],
    folds: List[Fold]
) -> None:
    """
    Assert k-fold coverage and stratification for every repeat.

    :raises FoldConfigurationError: on overlap, gaps or unbalanced folds
    """
    y = np.asarray(labels)
    n = y.shape[0]
    overall = y.mean()
    repeats = sorted({f.repeat for f in folds})
    for r in repeats:
        cells = [f for f in folds if f.repeat == r]
        held_out = np.concatenate([f.test_idx for f in cells])
        if held_out.size != n or np.unique(held_out).size != n:
            raise FoldConfigurationError(f"repeat {r} does not partition {n} samples")
        for f in cells:
            if np.intersect1d(f.train_idx, f.test_idx).size:
                raise FoldConfigurationError(f"fold {f.key} trains on held-out samples")
            expected = overall * f.test_idx.size
            if abs(y[f.test_idx].sum() - expected) > 1:
                raise FoldConfigurationError(f"fold {f.key} is not stratified")
