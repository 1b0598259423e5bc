# lnpredict/analysis/metrics.py

from typing import Dict, Optional, Sequence, Union
import numpy as np
import pandas as pd
from sklearn.metrics import confusion_matrix, roc_auc_score, roc_curve

ArrayLike = Union[Sequence, np.ndarray, pd.Series]

METRICS = [
    "misclassification",
    "sensitivity",
    "specificity",
    "auc",
    "brier_score",
    "average_probability",
]

# metrics where a smaller value is better
LOWER_IS_BETTER = {"misclassification", "brier_score"}


def _safe_ratio(num: float, den: float) -> float:
    return float(num) / float(den) if den else np.nan


def classification_metrics(
    y_true: ArrayLike,
    y_pred: ArrayLike,
    y_prob: Optional[ArrayLike] = None
) -> Dict[str, float]:
    """
    Binary classification metrics with 1 as the positive class.

    Undefined values (no positives, no probabilities, a single class for
    AUC) come back as NaN; everything else lies in [0, 1].

    :returns: dict with the keys of METRICS plus n
    """
    y_true = np.asarray(y_true).astype(int)
    y_pred = np.asarray(y_pred).astype(int)
    tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()

    out = {
        "misclassification": _safe_ratio(fp + fn, y_true.size),
        "sensitivity": _safe_ratio(tp, tp + fn),
        "specificity": _safe_ratio(tn, tn + fp),
        "auc": np.nan,
        "brier_score": np.nan,
        "average_probability": np.nan,
        "n": int(y_true.size),
    }
    if y_prob is None:
        return out
    y_prob = np.asarray(y_prob, dtype=float)
    if y_prob.size == 0 or not np.isfinite(y_prob).all():
        return out

    if np.unique(y_true).size == 2:
        out["auc"] = float(roc_auc_score(y_true, y_prob))
    out["brier_score"] = float(np.mean((y_prob - y_true) ** 2))
    out["average_probability"] = float(np.mean(np.where(y_true == 1, y_prob, 1 - y_prob)))
    return out


def aggregate_predictions(predictions: pd.DataFrame) -> pd.DataFrame:
    """
    Pool predictions across repeats and folds into one metric row per variant.

    Failed cells are left out of the pooled metrics and counted in
    `n_failed_cells`. `misclassification_mean`/`_std` summarise the spread
    of the per-repeat misclassification rates.

    :param predictions: rows as returned by run_cross_validation
    :returns: DataFrame indexed by variant
    """
    records = []
    for variant, rows in predictions.groupby("variant", sort=False):
        ok = rows[rows["status"] == "ok"]
        failed = rows[rows["status"] != "ok"]
        if len(ok):
            record = classification_metrics(ok["y_true"], ok["y_pred"], ok["y_prob"])
            per_repeat = (
                (ok["y_true"] != ok["y_pred"]).groupby(ok["repeat"]).mean()
            )
            record["misclassification_mean"] = float(per_repeat.mean())
            record["misclassification_std"] = float(per_repeat.std(ddof=0))
        else:
            record = {m: np.nan for m in METRICS}
            record["n"] = 0
            record["misclassification_mean"] = np.nan
            record["misclassification_std"] = np.nan
        record["variant"] = variant
        record["n_failed_cells"] = (
            failed.groupby(["repeat", "fold"]).ngroups if len(failed) else 0
        )
        records.append(record)

    table = pd.DataFrame.from_records(records).set_index("variant")
    return table[METRICS + ["misclassification_mean", "misclassification_std", "n", "n_failed_cells"]]


def per_repeat_metrics(predictions: pd.DataFrame) -> pd.DataFrame:
    """
    Metrics for every (variant, repeat), pooling the folds of a repeat.
    """
    records = []
    ok = predictions[predictions["status"] == "ok"]
    for (variant, repeat), rows in ok.groupby(["variant", "repeat"], sort=False):
        record = classification_metrics(rows["y_true"], rows["y_pred"], rows["y_prob"])
        record["variant"] = variant
        record["repeat"] = repeat
        records.append(record)
    columns = ["variant", "repeat"] + METRICS + ["n"]
    if not records:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame.from_records(records)[columns]


def rank_variants(table: pd.DataFrame) -> pd.DataFrame:
    """
    Rank of each variant under each metric (1 = best, ties share the best rank).
    """
    ranks = {}
    for metric in METRICS:
        if metric not in table.columns:
            continue
        ranks[metric] = table[metric].rank(
            method="min",
            ascending=metric in LOWER_IS_BETTER,
            na_option="bottom",
        ).astype(int)
    return pd.DataFrame(ranks, index=table.index)


def select_best_variant(table: pd.DataFrame) -> str:
    """
    Variant with the lowest misclassification rate.

    Ties go to the higher sensitivity, then the higher specificity, then the
    variant name.

    :raises ValueError: if no variant produced predictions
    """
    scored = table[table["misclassification"].notna()]
    if scored.empty:
        raise ValueError("no variant produced any predictions")
    order = scored.assign(
        _sens=-scored["sensitivity"].fillna(-1.0),
        _spec=-scored["specificity"].fillna(-1.0),
        _name=scored.index.astype(str),
    ).sort_values(["misclassification", "_sens", "_spec", "_name"], kind="mergesort")
    return str(order.index[0])


def roc_points(
    y_true: ArrayLike,
    y_prob: ArrayLike
) -> pd.DataFrame:
    """
    ROC curve as ordered (fpr, tpr, threshold) points.

    :raises ValueError: if y_true holds a single class
    """
    y_true = np.asarray(y_true).astype(int)
    if np.unique(y_true).size < 2:
        raise ValueError("ROC curve needs both classes")
    fpr, tpr, thresholds = roc_curve(y_true, np.asarray(y_prob, dtype=float))
    return pd.DataFrame({"fpr": fpr, "tpr": tpr, "threshold": thresholds})


def misclassification_counts(predictions: pd.DataFrame) -> pd.DataFrame:
    """
    How often each training sample was misclassified, per variant.

    :returns: DataFrame with n_predicted, n_misclassified and avg_prob_wrong
        (mean positive-class probability over the wrong calls), indexed by
        (variant, sample), most often misclassified first
    """
    ok = predictions[predictions["status"] == "ok"].copy()
    ok["wrong"] = (ok["y_true"] != ok["y_pred"]).astype(int)
    ok["prob_wrong"] = ok["y_prob"].where(ok["wrong"] == 1)
    stats = ok.groupby(["variant", "sample"], sort=False).agg(
        n_predicted=("wrong", "size"),
        n_misclassified=("wrong", "sum"),
        avg_prob_wrong=("prob_wrong", "mean"),
    )
    return stats.sort_values("n_misclassified", ascending=False, kind="mergesort")
