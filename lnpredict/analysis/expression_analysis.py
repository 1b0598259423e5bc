# lnpredict/analysis/expression_analysis.py

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union
import numpy as np
import pandas as pd
import patsy
from inmoose.limma import MArrayLM, eBayes, lmFit
from statsmodels.stats.multitest import multipletests

LabelsLike = Union[pd.Series, Sequence[int], np.ndarray]

TOP_TABLE_COLUMNS = ["logFC", "AveExpr", "t", "P.Value", "adj.P.Val", "B"]

# design column holding the node-positive vs node-negative difference
LABEL_COEF = "label"


@dataclass(frozen=True)
class ModeratedTResult:
    """
    Moderated t-test output.

    `table` is indexed by gene id in input order; use `top_table` for the
    ranking.
    """
    table: pd.DataFrame
    df_prior: float
    s2_prior: float
    var_prior: float


def align_labels(expression: pd.DataFrame, labels: LabelsLike) -> np.ndarray:
    """
    Return labels as a 0/1 array in the column order of `expression`.

    A Series is matched on sample id; any other sequence is taken positionally.
    """
    if isinstance(labels, pd.Series):
        missing = expression.columns.difference(labels.index)
        if len(missing):
            raise ValueError(f"no label for samples: {missing.tolist()}")
        y = labels.loc[expression.columns].to_numpy()
    else:
        y = np.asarray(labels)
        if y.shape[0] != expression.shape[1]:
            raise ValueError(
                f"{y.shape[0]} labels for {expression.shape[1]} samples"
            )
    y = y.astype(int)
    if not set(np.unique(y)) <= {0, 1}:
        raise ValueError(f"labels must be 0/1, found {np.unique(y).tolist()}")
    return y


def compute_group_means(
    expression: pd.DataFrame,
    labels: LabelsLike
) -> pd.DataFrame:
    """
    Mean expression per gene within each label group.

    :param expression: genes x samples matrix
    :param labels: 0/1 label per sample
    :returns: DataFrame indexed by gene, one column per label value
    """
    y = align_labels(expression, labels)
    grouped = expression.T.groupby(y).mean()
    return grouped.T


def fit_linear_models(
    expression: pd.DataFrame,
    labels: LabelsLike
) -> MArrayLM:
    """
    Fit expression ~ 1 + label for every gene with limma's lmFit.

    Genes with missing values are fitted on their observed samples; a gene
    left with fewer than three samples or a single class gets NaN statistics.

    :param expression: genes x samples matrix
    :param labels: 0/1 label per sample
    :returns: MArrayLM whose `label` coefficient is the group difference
    """
    y = align_labels(expression, labels)
    if y.shape[0] < 3:
        raise ValueError(f"need at least 3 samples, got {y.shape[0]}")
    if np.unique(y).size < 2:
        raise ValueError("both label classes must be present")

    design = patsy.dmatrix(f"~ {LABEL_COEF}", pd.DataFrame({LABEL_COEF: y}))
    values = expression.astype(np.float64)
    observed = values.notna().to_numpy()
    n_pos = (observed & (y == 1)).sum(axis=1)
    n_obs = observed.sum(axis=1)
    unusable = (n_obs < 3) | (n_pos == 0) | (n_pos == n_obs)
    if unusable.any():
        values = values.copy()
        values.loc[unusable] = np.nan
    return lmFit(values, design)


def moderated_t_test(
    expression: pd.DataFrame,
    labels: LabelsLike,
    proportion: float = 0.01,
    stdev_coef_lim: Tuple[float, float] = (0.1, 4.0)
) -> ModeratedTResult:
    """
    Empirical-Bayes moderated t-test of label effect, gene by gene.

    Residual variances are squeezed toward a prior fitted across all genes
    (limma's eBayes), which stabilises the t-statistics when samples are few
    and genes many. P-values are BH-adjusted over the genes with a finite
    statistic.

    :param expression: genes x samples matrix (log scale)
    :param labels: 0/1 label per sample, 1 = positive class
    :param proportion: assumed fraction of differentially expressed genes (for B)
    :param stdev_coef_lim: limits on the prior coefficient standard deviation
    :returns: ModeratedTResult with logFC, AveExpr, t, P.Value, adj.P.Val, B
    """
    fit = eBayes(
        fit_linear_models(expression, labels),
        proportion=proportion,
        stdev_coef_lim=stdev_coef_lim,
    )
    pvalue = fit.p_value[LABEL_COEF].to_numpy(dtype=np.float64)
    adjusted = np.full_like(pvalue, np.nan)
    ok = np.isfinite(pvalue)
    if ok.any():
        adjusted[ok] = multipletests(pvalue[ok], method="fdr_bh")[1]

    table = pd.DataFrame(
        {
            "logFC": fit.coefficients[LABEL_COEF].to_numpy(dtype=np.float64),
            "AveExpr": expression.mean(axis=1).to_numpy(dtype=np.float64),
            "t": fit.t[LABEL_COEF].to_numpy(dtype=np.float64),
            "P.Value": pvalue,
            "adj.P.Val": adjusted,
            "B": fit.lods[LABEL_COEF].to_numpy(dtype=np.float64),
        },
        index=expression.index,
    )
    var_prior = np.asarray(fit.var_prior, dtype=np.float64)
    return ModeratedTResult(
        table=table,
        df_prior=float(np.asarray(fit.df_prior)),
        s2_prior=float(np.asarray(fit.s2_prior)),
        var_prior=float(var_prior[fit.coefficients.columns.get_loc(LABEL_COEF)]),
    )


def top_table(
    result: ModeratedTResult,
    n: Optional[int] = None
) -> pd.DataFrame:
    """
    Genes ordered by ascending p-value; ties by larger |t|, then gene id.

    :param n: keep only the first n genes
    """
    table = result.table
    keys = pd.DataFrame(
        {
            "p": table["P.Value"].to_numpy(),
            "neg_abs_t": -table["t"].abs().to_numpy(),
            "gene": table.index.astype(str),
        }
    )
    order = keys.sort_values(
        ["p", "neg_abs_t", "gene"], na_position="last", kind="mergesort"
    ).index
    ranked = table.iloc[order.to_numpy()]
    ranked.index.name = "gene"
    return ranked if n is None else ranked.head(n)


def rank_genes(
    expression: pd.DataFrame,
    labels: LabelsLike
) -> List[str]:
    """
    Gene ids ordered from most to least significant.

    Only the samples present in `expression` are used, so passing a fold's
    training columns ranks on that fold alone.
    """
    return top_table(moderated_t_test(expression, labels)).index.tolist()
