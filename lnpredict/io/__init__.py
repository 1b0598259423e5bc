from lnpredict.io.readers import (
    DataAlignmentError,
    ExpressionDataset,
    load_expression_dataset,
    read_dataframe,
)
from lnpredict.io.writers import save_features, save_json, save_model, save_table

__all__ = [
    "DataAlignmentError",
    "ExpressionDataset",
    "load_expression_dataset",
    "read_dataframe",
    "save_features",
    "save_json",
    "save_model",
    "save_table",
]
