# lnpredict/preprocessing/feature_selection.py

from typing import Dict, List, Sequence, Tuple, Union
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.model_selection import train_test_split

from lnpredict.analysis.expression_analysis import rank_genes
from lnpredict.io.readers import TEST, TRAINING
from lnpredict.preprocessing.folds import Fold
from lnpredict.utils import get_logger

log = get_logger(__name__)


def needs_log2(expression: pd.DataFrame) -> bool:
    """
    Guess whether intensities are still on the linear scale.

    Uses the quantile rule common to GEO series matrices: a 99th percentile
    above 100, or a wide range with a positive lower quartile.
    """
    values = expression.to_numpy(dtype=np.float64)
    values = values[np.isfinite(values)]
    if values.size == 0:
        return False
    q0, q25, q99, q100 = np.quantile(values, [0.0, 0.25, 0.99, 1.0])
    return bool(q99 > 100 or (q100 - q0 > 50 and q25 > 0))


def log2_transform(expression: pd.DataFrame) -> pd.DataFrame:
    """
    log2 of the intensities; non-positive values become missing.
    """
    positive = expression.where(expression > 0)
    return np.log2(positive)


def filter_genes(
    expression: pd.DataFrame,
    max_missing: float = 0.0
) -> pd.DataFrame:
    """
    Drop genes with too many missing values or no variation.

    :param expression: genes x samples matrix
    :param max_missing: largest tolerated fraction of missing samples per gene
    :returns: filtered matrix, rows in their original order
    """
    missing = expression.isna().mean(axis=1)
    spread = expression.max(axis=1) - expression.min(axis=1)
    keep = (missing <= max_missing) & (spread > 0)
    dropped = int((~keep).sum())
    if dropped:
        log.info("Dropped %d of %d genes (missing or constant)", dropped, len(keep))
    return expression.loc[keep]


def split_cohort(
    metadata: pd.DataFrame,
    test_size: float = 0.2,
    random_state: int = 42
) -> pd.DataFrame:
    """
    Stratified training/test assignment for metadata without a split column.

    :param metadata: per-sample metadata with a 0/1 `label` column
    :param test_size: fraction to reserve for test
    :param random_state: for reproducibility
    :returns: copy of metadata with `split` filled in
    """
    train, test = train_test_split(
        metadata.index.to_numpy(),
        test_size=test_size,
        stratify=metadata["label"],
        random_state=random_state
    )
    out = metadata.copy()
    out.loc[train, "split"] = TRAINING
    out.loc[test, "split"] = TEST
    return out


def select_top_genes(
    ranking: Sequence[str],
    top_n: int = 50
) -> List[str]:
    """First `top_n` gene ids of a ranking."""
    if top_n < 1:
        raise ValueError(f"top_n must be positive, got {top_n}")
    return list(ranking[:top_n])


def rank_fold_training(
    expression: pd.DataFrame,
    labels: Union[pd.Series, np.ndarray],
    fold: Fold
) -> List[str]:
    """
    Rank genes on the training part of one fold.

    Held-out columns never reach the moderated t-test.
    """
    y = np.asarray(labels)
    train_expr = expression.iloc[:, fold.train_idx]
    return rank_genes(train_expr, y[fold.train_idx])


def rank_fold_genes(
    expression: pd.DataFrame,
    labels: Union[pd.Series, np.ndarray],
    folds: List[Fold],
    n_jobs: int = 1
) -> Dict[Tuple[int, int], List[str]]:
    """
    Per-fold gene rankings keyed by (repeat, fold).

    :param expression: genes x samples matrix of the training cohort
    :param labels: 0/1 labels in the column order of `expression`
    :param folds: folds over the training cohort
    :param n_jobs: joblib workers
    """
    y = np.asarray(labels)
    log.info("Ranking genes within %d folds", len(folds))
    rankings = Parallel(n_jobs=n_jobs)(
        delayed(rank_fold_training)(expression, y, fold) for fold in folds
    )
    return {fold.key: ranking for fold, ranking in zip(folds, rankings)}
