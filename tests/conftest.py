import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from lnpredict.io.readers import ExpressionDataset

N_GENES = 120
N_INFORMATIVE = 8


def make_expression(n_pos, n_neg, n_genes=N_GENES, n_informative=N_INFORMATIVE,
                    shift=2.0, seed=0, prefix="S"):
    """Log-scale genes x samples matrix; the first genes are up in positives."""
    rng = np.random.default_rng(seed)
    labels = np.array([1] * n_pos + [0] * n_neg)
    values = rng.normal(8.0, 1.0, size=(n_genes, labels.size))
    values[:n_informative, labels == 1] += shift
    genes = [f"g{i:03d}" for i in range(n_genes)]
    samples = [f"{prefix}{i:03d}" for i in range(labels.size)]
    expr = pd.DataFrame(values, index=genes, columns=samples)
    return expr, pd.Series(labels, index=samples, name="label")


@pytest.fixture
def informative_genes():
    return [f"g{i:03d}" for i in range(N_INFORMATIVE)]


@pytest.fixture
def expression_and_labels():
    return make_expression(20, 20)


@pytest.fixture
def dataset():
    train_expr, train_y = make_expression(20, 20, seed=1, prefix="T")
    test_expr, test_y = make_expression(6, 6, seed=2, prefix="V")
    expression = pd.concat([train_expr, test_expr], axis=1)
    metadata = pd.DataFrame({
        "label": pd.concat([train_y, test_y]),
        "split": ["training"] * train_y.size + ["test"] * test_y.size,
    })
    return ExpressionDataset(expression, metadata)


@pytest.fixture
def write_dataset_csv(tmp_path, dataset):
    """Write the dataset fixture as expression/metadata CSVs."""
    def _write(metadata=None):
        expr_path = tmp_path / "expression.csv"
        meta_path = tmp_path / "metadata.csv"
        dataset.expression.to_csv(expr_path, index_label="gene")
        meta = dataset.metadata if metadata is None else metadata
        meta.to_csv(meta_path, index_label="sample")
        return expr_path, meta_path
    return _write
