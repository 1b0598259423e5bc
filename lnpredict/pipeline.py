# lnpredict/pipeline.py
"""
End-to-end study: whole-training gene ranking, repeated stratified
cross-validation of every classifier variant with per-fold gene selection,
choice of the best variant, and its evaluation on the test cohort.
"""

import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pandas as pd

from lnpredict.analysis.classification import (
    FinalEvaluation,
    evaluate_on_test,
    run_cross_validation,
)
from lnpredict.analysis.expression_analysis import (
    compute_group_means,
    moderated_t_test,
    top_table,
)
from lnpredict.analysis.metrics import (
    aggregate_predictions,
    misclassification_counts,
    per_repeat_metrics,
    rank_variants,
    select_best_variant,
)
from lnpredict.config import StudyConfig
from lnpredict.io.readers import TEST, ExpressionDataset
from lnpredict.io.writers import save_features, save_json, save_model, save_table
from lnpredict.preprocessing.feature_selection import (
    filter_genes,
    log2_transform,
    needs_log2,
    rank_fold_genes,
    split_cohort,
)
from lnpredict.preprocessing.folds import Fold, check_folds, make_folds
from lnpredict.utils import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class StudyResult:
    config: StudyConfig
    gene_table: pd.DataFrame
    group_means: pd.DataFrame
    folds: List[Fold]
    rankings: Dict[Tuple[int, int], List[str]]
    predictions: pd.DataFrame
    cv_metrics: pd.DataFrame
    cv_ranks: pd.DataFrame
    repeat_metrics: pd.DataFrame
    sample_errors: pd.DataFrame
    best_variant: str
    final: FinalEvaluation


def prepare_dataset(
    dataset: ExpressionDataset,
    log2: Optional[bool] = None,
    max_missing: float = 0.0,
    test_size: float = 0.2,
    seed: int = 42
) -> ExpressionDataset:
    """
    Log-transform (when `log2` is None, only if intensities look linear),
    drop unusable genes, and split off a test cohort if there is none.
    """
    expression = dataset.expression
    if log2 is None:
        log2 = needs_log2(expression)
    if log2:
        log.info("Applying log2 transform to intensities")
        expression = log2_transform(expression)
    expression = filter_genes(expression, max_missing=max_missing)

    metadata = dataset.metadata
    if not (metadata["split"] == TEST).any():
        log.info("No test cohort in metadata, holding out %.0f%% stratified", test_size * 100)
        metadata = split_cohort(metadata, test_size=test_size, random_state=seed)
    return ExpressionDataset(expression, metadata)


def run_study(dataset: ExpressionDataset, config: StudyConfig = StudyConfig()) -> StudyResult:
    """
    Run the full model comparison on a prepared dataset.

    Gene rankings used inside cross-validation come from each fold's
    training samples only; the final model's genes come from the whole
    training cohort only.
    """
    train = dataset.training()
    y_train = train.labels.to_numpy()
    n_pos = int(y_train.sum())
    log.info(
        "Training cohort: %d samples (%d positive / %d negative), %d genes",
        len(y_train), n_pos, len(y_train) - n_pos, train.expression.shape[0],
    )

    gene_table = top_table(moderated_t_test(train.expression, train.labels))
    group_means = compute_group_means(train.expression, train.labels)
    log.info(
        "Whole-training ranking: %d genes with adj.P.Val < 0.05",
        int((gene_table["adj.P.Val"] < 0.05).sum()),
    )

    folds = make_folds(y_train, config.n_splits, config.n_repeats, config.seed)
    check_folds(y_train, folds)
    rankings = rank_fold_genes(train.expression, y_train, folds, n_jobs=config.n_jobs)

    predictions = run_cross_validation(
        train.expression, y_train, folds, rankings, config.variants,
        top_n=config.top_n,
        seed=config.seed,
        n_jobs=config.n_jobs,
        strict_convergence=config.strict_convergence,
    )
    cv_metrics = aggregate_predictions(predictions)
    cv_ranks = rank_variants(cv_metrics)
    repeat_metrics = per_repeat_metrics(predictions)
    for variant, row in cv_metrics.iterrows():
        log.info(
            "  %-14s misclass=%.3f sens=%.3f spec=%.3f auc=%.3f failed=%d",
            variant, row["misclassification"], row["sensitivity"],
            row["specificity"], row["auc"], row["n_failed_cells"],
        )

    best = select_best_variant(cv_metrics)
    log.info("Best variant by misclassification: %s", best)

    final = evaluate_on_test(
        best, dataset,
        top_n=config.top_n,
        seed=config.seed,
        gene_table=gene_table,
        strict_convergence=config.strict_convergence,
    )
    return StudyResult(
        config=config,
        gene_table=gene_table,
        group_means=group_means,
        folds=folds,
        rankings=rankings,
        predictions=predictions,
        cv_metrics=cv_metrics,
        cv_ranks=cv_ranks,
        repeat_metrics=repeat_metrics,
        sample_errors=misclassification_counts(predictions),
        best_variant=best,
        final=final,
    )


def write_report(
    result: StudyResult,
    dataset: ExpressionDataset,
    output_dir: str,
    plots: bool = True
) -> None:
    """
    Write tables, the fitted model and (optionally) figures to `output_dir`.
    """
    os.makedirs(output_dir, exist_ok=True)
    n_top = result.config.report_top_genes
    top = result.gene_table.head(n_top).join(
        result.group_means.rename(columns=lambda c: f"mean_{c}")
    )
    save_table(top, os.path.join(output_dir, "top_genes.csv"))
    save_table(result.predictions, os.path.join(output_dir, "cv_predictions.csv"), index=False)
    save_table(result.cv_metrics, os.path.join(output_dir, "cv_metrics.csv"))
    save_table(result.cv_ranks, os.path.join(output_dir, "cv_ranks.csv"))
    save_table(result.repeat_metrics, os.path.join(output_dir, "cv_repeat_metrics.csv"), index=False)
    save_table(result.sample_errors, os.path.join(output_dir, "cv_sample_errors.csv"))

    final = result.final
    save_table(final.predictions, os.path.join(output_dir, "test_predictions.csv"))
    save_table(final.roc, os.path.join(output_dir, "test_roc.csv"), index=False)
    save_features(final.genes, os.path.join(output_dir, "selected_genes.json"))
    save_json(
        {
            "variant": final.variant,
            "metrics": final.metrics,
            "config": result.config.to_dict(),
        },
        os.path.join(output_dir, "test_metrics.json"),
    )
    save_model(final.model, os.path.join(output_dir, f"{final.variant}.joblib"))

    if plots:
        # deferred so table-only runs never touch a display backend
        from lnpredict.visualizations import plots as figs

        fig_dir = os.path.join(output_dir, "figures")
        train = dataset.training()
        figs.plot_volcano(result.gene_table, path=os.path.join(fig_dir, "volcano.png"))
        figs.plot_heatmap(
            train.expression, train.labels, final.genes[:n_top],
            path=os.path.join(fig_dir, "top_genes_heatmap.png"),
        )
        figs.plot_cv_comparison(
            result.repeat_metrics, path=os.path.join(fig_dir, "cv_misclassification.png"),
        )
        figs.plot_roc_curve(
            final.roc, final.metrics["auc"],
            title=f"Test ROC ({final.variant})",
            path=os.path.join(fig_dir, "test_roc.png"),
        )
        figs.plot_confusion_matrix(
            final.predictions["y_true"].to_numpy(), final.predictions["y_pred"].to_numpy(),
            title=f"Test confusion matrix ({final.variant})",
            path=os.path.join(fig_dir, "test_confusion.png"),
        )
    log.info("Report written to %s", output_dir)
