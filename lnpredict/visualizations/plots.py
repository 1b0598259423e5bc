# lnpredict/visualizations/plots.py

from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy.stats import zscore
from sklearn.metrics import confusion_matrix

PathLike = Optional[Union[str, Path]]


def _finish(fig: plt.Figure, path: PathLike) -> plt.Figure:
    fig.tight_layout()
    if path is None:
        plt.show()
    else:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=150)
        plt.close(fig)
    return fig


def plot_volcano(
    gene_table: pd.DataFrame,
    log2fc_col: str = 'logFC',
    pval_col: str = 'adj.P.Val',
    fc_thresh: float = 1.0,
    p_thresh: float = 0.05,
    figsize: tuple = (10, 8),
    path: PathLike = None
) -> plt.Figure:
    """
    Volcano chart of a moderated t-test table, points colored by significance.
    """
    df = gene_table.copy()
    df['-log10(pval)'] = -np.log10(df[pval_col].clip(lower=1e-300))
    df['color'] = 'gray'
    df.loc[(df[log2fc_col] >= fc_thresh) & (df[pval_col] < p_thresh), 'color'] = 'red'
    df.loc[(df[log2fc_col] <= -fc_thresh) & (df[pval_col] < p_thresh), 'color'] = 'blue'

    fig, ax = plt.subplots(figsize=figsize)
    ax.scatter(df[log2fc_col], df['-log10(pval)'], c=df['color'], alpha=0.7, edgecolor='k', s=12)
    ax.axvline(fc_thresh, linestyle='--')
    ax.axvline(-fc_thresh, linestyle='--')
    ax.axhline(-np.log10(p_thresh), linestyle='--')
    ax.set_xlabel('Log2 Fold Change (node positive vs negative)')
    ax.set_ylabel('-Log10(FDR-adjusted p-value)')
    ax.set_title('Volcano Plot')
    return _finish(fig, path)


def plot_heatmap(
    expression: pd.DataFrame,
    labels: pd.Series,
    genes: List[str],
    cmap: str = 'vlag',
    cluster_rows: bool = True,
    palette: Dict[Any, str] = {1: 'red', 0: 'blue'},
    figsize: tuple = (12, 8),
    path: PathLike = None
) -> Any:
    """
    Heatmap of selected genes, z-scored per gene, samples sorted by label.
    """
    order = labels.sort_values(kind='mergesort').index
    data = expression.loc[genes, order]
    scaled = data.apply(zscore, axis=1, result_type='broadcast')
    colors = labels.loc[order].map(palette)

    grid = sns.clustermap(
        scaled,
        cmap=cmap,
        row_cluster=cluster_rows,
        col_cluster=False,
        col_colors=colors,
        xticklabels=False,
        yticklabels=True,
        figsize=figsize
    )
    grid.fig.suptitle("Top genes (z-score)")
    if path is None:
        plt.show()
    else:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        grid.savefig(path, dpi=150)
        plt.close(grid.fig)
    return grid


def plot_roc_curve(
    roc: pd.DataFrame,
    auc: float,
    title: str = 'Test ROC Curve',
    figsize: tuple = (6, 5),
    path: PathLike = None
) -> plt.Figure:
    """
    Plot ROC points (fpr, tpr) with the chance diagonal.
    """
    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(roc['fpr'], roc['tpr'], lw=2, label=f'AUC = {auc:.3f}')
    ax.plot([0, 1], [0, 1], 'k--')
    ax.set_xlabel('False Positive Rate')
    ax.set_ylabel('True Positive Rate')
    ax.set_title(title)
    ax.legend(loc='lower right')
    return _finish(fig, path)


def plot_cv_comparison(
    repeat_metrics: pd.DataFrame,
    metric: str = 'misclassification',
    figsize: tuple = (9, 5),
    path: PathLike = None
) -> plt.Figure:
    """
    Box plot of a per-repeat metric for every classifier variant.
    """
    fig, ax = plt.subplots(figsize=figsize)
    sns.boxplot(x='variant', y=metric, data=repeat_metrics, ax=ax)
    sns.stripplot(x='variant', y=metric, data=repeat_metrics, ax=ax,
                  color='black', alpha=0.4, jitter=0.2)
    ax.set_xlabel('Classifier')
    ax.set_ylabel(metric.replace('_', ' ').capitalize())
    ax.set_title(f'Cross-validated {metric.replace("_", " ")} per repeat')
    return _finish(fig, path)


def plot_confusion_matrix(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    title: str = 'Confusion Matrix',
    figsize: tuple = (5, 4),
    path: PathLike = None
) -> plt.Figure:
    cm = confusion_matrix(y_true, y_pred, labels=[0, 1])
    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(cm, annot=True, fmt='d', cmap='Blues', ax=ax,
                xticklabels=['Predicted 0', 'Predicted 1'],
                yticklabels=['Actual 0', 'Actual 1'])
    ax.set_title(title)
    ax.set_xlabel('Predicted')
    ax.set_ylabel('Actual')
    return _finish(fig, path)
