# lnpredict/io/readers.py

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union
import numpy as np
import pandas as pd

from lnpredict.utils import get_logger

log = get_logger(__name__)

TRAINING = "training"
TEST = "test"


class DataAlignmentError(ValueError):
    """Expression columns and metadata rows do not describe the same samples."""


def read_dataframe(
    path: Union[str, Path],
    **read_csv_kwargs
) -> pd.DataFrame:
    """
    Load a CSV into a pandas DataFrame.

    :param path: filesystem path or URI to CSV
    :param read_csv_kwargs: passed straight into pandas.read_csv
    :returns: DataFrame
    :raises FileNotFoundError: if file doesn’t exist
    :raises pandas.errors.ParserError: if CSV parsing fails
    """
    fp = Path(path)
    if not fp.exists():
        raise FileNotFoundError(f"no such file: {fp}")
    return pd.read_csv(fp, **read_csv_kwargs)


@dataclass(frozen=True)
class ExpressionDataset:
    """
    Genes x samples expression matrix with its per-sample metadata.

    `metadata` is indexed by sample id in the same order as the expression
    columns and carries at least `label` (0/1) and `split`.
    """
    expression: pd.DataFrame
    metadata: pd.DataFrame

    def __post_init__(self) -> None:
        check_alignment(self.expression, self.metadata)

    @property
    def labels(self) -> pd.Series:
        return self.metadata["label"]

    @property
    def training_ids(self) -> List[str]:
        return self.metadata.index[self.metadata["split"] == TRAINING].tolist()

    @property
    def test_ids(self) -> List[str]:
        return self.metadata.index[self.metadata["split"] == TEST].tolist()

    @property
    def genes(self) -> List[str]:
        return self.expression.index.tolist()

    def subset(
        self,
        samples: Sequence[str],
        genes: Optional[Sequence[str]] = None
    ) -> "ExpressionDataset":
        """Slice by sample ids (and optionally gene ids), keeping identities."""
        samples = list(samples)
        expr = self.expression.loc[:, samples]
        if genes is not None:
            expr = expr.loc[list(genes)]
        return ExpressionDataset(expr, self.metadata.loc[samples])

    def training(self) -> "ExpressionDataset":
        return self.subset(self.training_ids)

    def test(self) -> "ExpressionDataset":
        return self.subset(self.test_ids)


def check_alignment(expression: pd.DataFrame, metadata: pd.DataFrame) -> None:
    """
    Verify one metadata record per expression column, in the same order.

    :raises DataAlignmentError: on duplicate, missing or extra samples
    """
    if expression.columns.has_duplicates:
        dups = expression.columns[expression.columns.duplicated()].unique().tolist()
        raise DataAlignmentError(f"duplicate sample columns in expression matrix: {dups}")
    if metadata.index.has_duplicates:
        dups = metadata.index[metadata.index.duplicated()].unique().tolist()
        raise DataAlignmentError(f"duplicate sample ids in metadata: {dups}")
    if expression.shape[1] != metadata.shape[0]:
        raise DataAlignmentError(
            f"expression matrix has {expression.shape[1]} samples "
            f"but metadata has {metadata.shape[0]} records"
        )
    missing = expression.columns.difference(metadata.index)
    if len(missing):
        raise DataAlignmentError(f"samples without metadata: {missing.tolist()}")
    if not expression.columns.equals(metadata.index):
        raise DataAlignmentError("metadata rows are not in expression column order")
    for col in ("label", "split"):
        if col not in metadata.columns:
            raise DataAlignmentError(f"metadata lacks required column '{col}'")


def encode_labels(values: pd.Series, positive: Any = 1) -> pd.Series:
    """
    Map a label column to 0/1 with `positive` as 1.

    :raises ValueError: if the column does not hold exactly two classes
    """
    if values.isna().any():
        raise ValueError(f"{int(values.isna().sum())} samples have no label")
    classes = pd.unique(values)
    if len(classes) != 2:
        raise ValueError(f"labels must be binary, found classes {list(classes)}")
    if positive not in set(classes):
        # string labels read back from CSV
        positive = str(positive)
        values = values.astype(str)
        if positive not in set(values):
            raise ValueError(f"positive label {positive!r} not among {list(classes)}")
    return (values == positive).astype(int)


def load_expression_dataset(
    expression_path: Union[str, Path],
    metadata_path: Union[str, Path],
    label_col: str = "label",
    split_col: Optional[str] = "split",
    ratio_col: Optional[str] = "ratio",
    positive_label: Any = 1,
    training_value: str = TRAINING,
    test_value: str = TEST,
) -> ExpressionDataset:
    """
    Read a genes x samples expression CSV and a per-sample metadata CSV.

    The expression file holds gene ids in its first column and one column per
    sample; the metadata file holds sample ids in its first column. When
    `split_col` is None or absent from the metadata, every sample is marked
    `training`; use `split_cohort` to carve out a test cohort afterwards.

    :param label_col: metadata column with lymph-node status
    :param split_col: metadata column with the training/test assignment
    :param ratio_col: optional metadata column with the lymph-node ratio
    :param positive_label: value of `label_col` meaning node positive
    :raises DataAlignmentError: if samples do not match one-to-one
    """
    expression = read_dataframe(expression_path, index_col=0)
    expression.index = expression.index.astype(str)
    expression.columns = expression.columns.astype(str)
    raw_meta = read_dataframe(metadata_path, index_col=0)
    raw_meta.index = raw_meta.index.astype(str)

    if label_col not in raw_meta.columns:
        raise DataAlignmentError(f"metadata lacks label column '{label_col}'")
    if expression.shape[1] != raw_meta.shape[0]:
        raise DataAlignmentError(
            f"expression matrix has {expression.shape[1]} samples "
            f"but metadata has {raw_meta.shape[0]} records"
        )

    metadata = pd.DataFrame(index=raw_meta.index)
    metadata["label"] = encode_labels(raw_meta[label_col], positive_label)
    if ratio_col and ratio_col in raw_meta.columns:
        metadata["ratio"] = pd.to_numeric(raw_meta[ratio_col], errors="coerce")
    if split_col and split_col in raw_meta.columns:
        split = raw_meta[split_col].astype(str).str.strip().str.lower()
        mapping = {training_value.lower(): TRAINING, test_value.lower(): TEST}
        unknown = sorted(set(split) - set(mapping))
        if unknown:
            raise DataAlignmentError(f"unknown split values: {unknown}")
        metadata["split"] = split.map(mapping)
    else:
        metadata["split"] = TRAINING

    missing = expression.columns.difference(metadata.index)
    if len(missing):
        raise DataAlignmentError(f"samples without metadata: {missing.tolist()}")
    metadata = metadata.loc[expression.columns]

    numeric = expression.apply(pd.to_numeric, errors="coerce")
    n_bad = int(numeric.isna().sum().sum() - expression.isna().sum().sum())
    if n_bad:
        log.warning("%d non-numeric expression values read as missing", n_bad)

    dataset = ExpressionDataset(numeric.astype(np.float64), metadata)
    log.info(
        "Loaded %d genes x %d samples (%d training / %d test)",
        numeric.shape[0], numeric.shape[1],
        len(dataset.training_ids), len(dataset.test_ids),
    )
    return dataset
