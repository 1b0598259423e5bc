# lnpredict/analysis/classification.py

import warnings
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.discriminant_analysis import LinearDiscriminantAnalysis
from sklearn.ensemble import RandomForestClassifier
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LogisticRegression
from sklearn.neighbors import KNeighborsClassifier
from sklearn.neural_network import MLPClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import SVC

from lnpredict.analysis.expression_analysis import moderated_t_test, top_table
from lnpredict.analysis.metrics import classification_metrics, roc_points
from lnpredict.analysis.pknn import ProbabilisticKNN
from lnpredict.io.readers import ExpressionDataset
from lnpredict.preprocessing.feature_selection import select_top_genes
from lnpredict.preprocessing.folds import Fold
from lnpredict.utils import get_logger

log = get_logger(__name__)

# Errors that mark a single (variant, fold) cell as failed
CELL_ERRORS = (ValueError, np.linalg.LinAlgError, FloatingPointError, ConvergenceWarning)

PREDICTION_COLUMNS = [
    "variant", "repeat", "fold", "sample",
    "y_true", "y_pred", "y_prob", "status", "error",
]


@dataclass(frozen=True)
class ClassifierVariant:
    """
    A named classifier with a uniform fit/predict surface.

    :param name: registry key
    :param factory: builds an unfitted estimator from a random seed
    :param scale: standardise genes before fitting
    """
    name: str
    factory: Callable[[int], Any]
    scale: bool = True

    def build(self, seed: int = 42) -> Any:
        clf = self.factory(seed)
        if not self.scale:
            return clf
        return Pipeline([
            ('scaler', StandardScaler()),
            ('clf', clf)
        ])

    def fit(self, X: pd.DataFrame, y: Union[pd.Series, np.ndarray], seed: int = 42) -> Any:
        model = self.build(seed)
        return model.fit(X, np.asarray(y))

    @staticmethod
    def predict(model: Any, X: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
        """
        Predicted labels and positive-class probabilities.
        """
        proba = np.asarray(model.predict_proba(X), dtype=float)
        classes = np.asarray(model.classes_)
        pos = np.flatnonzero(classes == 1)
        prob_pos = proba[:, pos[0]] if pos.size else np.zeros(proba.shape[0])
        return np.asarray(model.predict(X)), prob_pos


VARIANTS: Dict[str, ClassifierVariant] = {
    "knn": ClassifierVariant(
        "knn",
        lambda seed: KNeighborsClassifier(n_neighbors=5),
    ),
    "lda": ClassifierVariant(
        "lda",
        lambda seed: LinearDiscriminantAnalysis(),
        scale=False,
    ),
    "svm": ClassifierVariant(
        "svm",
        lambda seed: SVC(kernel="rbf", C=1.0, probability=True, random_state=seed),
    ),
    "elastic_net": ClassifierVariant(
        "elastic_net",
        lambda seed: LogisticRegression(
            penalty="elasticnet", solver="saga", l1_ratio=0.5,
            C=1.0, max_iter=5000, random_state=seed,
        ),
    ),
    "random_forest": ClassifierVariant(
        "random_forest",
        lambda seed: RandomForestClassifier(n_estimators=500, random_state=seed),
        scale=False,
    ),
    "neural_net": ClassifierVariant(
        "neural_net",
        lambda seed: MLPClassifier(
            hidden_layer_sizes=(10,), alpha=1e-2,
            max_iter=2000, random_state=seed,
        ),
    ),
    "pknn": ClassifierVariant(
        "pknn",
        lambda seed: ProbabilisticKNN(),
    ),
}


def list_variants() -> List[str]:
    return list(VARIANTS.keys())


def get_variant(name: str) -> ClassifierVariant:
    if name not in VARIANTS:
        raise ValueError(f"Unknown classifier variant '{name}'. Available: {list_variants()}")
    return VARIANTS[name]


@contextmanager
def convergence_policy(strict: bool) -> Iterator[None]:
    """Raise ConvergenceWarning as an error when `strict`, otherwise silence it."""
    with warnings.catch_warnings():
        warnings.simplefilter("error" if strict else "ignore", ConvergenceWarning)
        yield


def _samples_by_genes(expression: pd.DataFrame, genes: Sequence[str], idx: np.ndarray) -> pd.DataFrame:
    return expression.loc[list(genes)].iloc[:, idx].T


def fit_predict_fold(
    variant: ClassifierVariant,
    expression: pd.DataFrame,
    labels: Union[pd.Series, np.ndarray],
    fold: Fold,
    genes: Sequence[str],
    seed: int = 42,
    strict_convergence: bool = False
) -> pd.DataFrame:
    """
    Train one variant on a fold's training samples and predict its held-out samples.

    A numerical failure is logged and returned as rows with status 'failed'
    and no predictions, so the rest of the comparison still runs.

    :param expression: genes x samples matrix of the training cohort
    :param labels: 0/1 labels in the column order of `expression`
    :param genes: fold-specific genes ranked on the fold's training part
    :returns: one row per held-out sample (see PREDICTION_COLUMNS)
    """
    y = np.asarray(labels)
    X_tr = _samples_by_genes(expression, genes, fold.train_idx)
    X_te = _samples_by_genes(expression, genes, fold.test_idx)
    y_te = y[fold.test_idx]

    rows = pd.DataFrame({
        "variant": variant.name,
        "repeat": fold.repeat,
        "fold": fold.fold,
        "sample": X_te.index.astype(str),
        "y_true": y_te,
    })
    try:
        with convergence_policy(strict_convergence):
            model = variant.fit(X_tr, y[fold.train_idx], seed=seed)
            preds, probs = variant.predict(model, X_te)
    except CELL_ERRORS as exc:
        log.warning(
            "%s failed on repeat %d fold %d: %s",
            variant.name, fold.repeat, fold.fold, exc,
        )
        rows["y_pred"] = np.nan
        rows["y_prob"] = np.nan
        rows["status"] = "failed"
        rows["error"] = f"{type(exc).__name__}: {exc}"
        return rows[PREDICTION_COLUMNS]

    rows["y_pred"] = preds.astype(int)
    rows["y_prob"] = probs
    rows["status"] = "ok"
    rows["error"] = ""
    return rows[PREDICTION_COLUMNS]


def run_cross_validation(
    expression: pd.DataFrame,
    labels: Union[pd.Series, np.ndarray],
    folds: List[Fold],
    rankings: Dict[Tuple[int, int], List[str]],
    variants: Sequence[str],
    top_n: int = 50,
    seed: int = 42,
    n_jobs: int = 1,
    strict_convergence: bool = False
) -> pd.DataFrame:
    """
    Evaluate every variant on every fold with that fold's top genes.

    All variants see the same folds and the same per-fold gene lists, so
    their results are paired.

    :param rankings: per-fold gene rankings keyed by (repeat, fold)
    :returns: pooled prediction rows across variants, repeats and folds
    """
    chosen = [get_variant(name) for name in variants]
    missing = [f.key for f in folds if f.key not in rankings]
    if missing:
        raise ValueError(f"no gene ranking for folds {missing}")

    log.info(
        "Cross-validating %d variants over %d folds (top %d genes)",
        len(chosen), len(folds), top_n,
    )
    y = np.asarray(labels)
    tasks = (
        delayed(fit_predict_fold)(
            variant, expression, y, fold,
            select_top_genes(rankings[fold.key], top_n),
            seed, strict_convergence,
        )
        for variant in chosen
        for fold in folds
    )
    frames = Parallel(n_jobs=n_jobs)(tasks)
    predictions = pd.concat(frames, ignore_index=True)

    failed = predictions[predictions["status"] == "failed"]
    if len(failed):
        n_cells = failed.groupby(["variant", "repeat", "fold"]).ngroups
        log.warning("%d of %d cells failed", n_cells, len(chosen) * len(folds))
    return predictions


@dataclass(frozen=True)
class FinalEvaluation:
    """Held-out test result of the chosen variant."""
    variant: str
    genes: List[str]
    gene_table: pd.DataFrame
    predictions: pd.DataFrame
    metrics: Dict[str, float]
    roc: pd.DataFrame
    model: Any


def evaluate_on_test(
    variant_name: str,
    dataset: ExpressionDataset,
    top_n: int = 50,
    seed: int = 42,
    gene_table: Optional[pd.DataFrame] = None,
    strict_convergence: bool = False
) -> FinalEvaluation:
    """
    Retrain a variant on the whole training cohort and score the test cohort.

    Genes are ranked on training samples only; the test cohort is touched
    only for prediction.

    :param gene_table: whole-training ranking from `top_table`, computed here
        when not given
    :param strict_convergence: a non-converged final fit raises ValueError
    """
    variant = get_variant(variant_name)
    train, test = dataset.training(), dataset.test()
    if not test.metadata.shape[0]:
        raise ValueError("dataset has no test samples")

    if gene_table is None:
        gene_table = top_table(moderated_t_test(train.expression, train.labels))
    gene_table = gene_table.head(top_n)
    genes = gene_table.index.tolist()
    X_tr = train.expression.loc[genes].T
    X_te = test.expression.loc[genes].T

    log.info(
        "Final %s fit on %d training samples, scoring %d test samples",
        variant.name, X_tr.shape[0], X_te.shape[0],
    )
    try:
        with convergence_policy(strict_convergence):
            model = variant.fit(X_tr, train.labels.to_numpy(), seed=seed)
    except ConvergenceWarning as exc:
        raise ValueError(f"final {variant.name} fit did not converge: {exc}") from exc
    preds, probs = variant.predict(model, X_te)

    y_te = test.labels.to_numpy()
    predictions = pd.DataFrame(
        {"y_true": y_te, "y_pred": preds.astype(int), "y_prob": probs},
        index=X_te.index,
    )
    predictions.index.name = "sample"
    metrics = classification_metrics(y_te, preds, probs)
    log.info(
        "Test: misclassification=%.3f sensitivity=%.3f specificity=%.3f auc=%.3f",
        metrics["misclassification"], metrics["sensitivity"],
        metrics["specificity"], metrics["auc"],
    )
    return FinalEvaluation(
        variant=variant.name,
        genes=genes,
        gene_table=gene_table,
        predictions=predictions,
        metrics=metrics,
        roc=roc_points(y_te, probs),
        model=model,
    )
