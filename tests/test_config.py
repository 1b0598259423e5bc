import json

import pytest

from lnpredict.config import DEFAULT_VARIANTS, StudyConfig


def test_defaults():
    config = StudyConfig()
    assert (config.n_splits, config.n_repeats, config.top_n) == (6, 10, 50)
    assert config.variants == DEFAULT_VARIANTS
    assert len(config.variants) == 7


@pytest.mark.parametrize("kwargs", [
    {"n_splits": 1},
    {"n_repeats": 0},
    {"top_n": 0},
    {"variants": ()},
    {"variants": ("lda", "boosting")},
    {"test_size": 1.0},
])
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        StudyConfig(**kwargs)


def test_from_json(tmp_path):
    path = tmp_path / "study.json"
    path.write_text(json.dumps({"n_repeats": 3, "variants": ["lda", "svm"]}))
    config = StudyConfig.from_json(path)
    assert config.n_repeats == 3
    assert config.variants == ("lda", "svm")
    assert config.n_splits == 6


def test_from_json_rejects_unknown_keys(tmp_path):
    path = tmp_path / "study.json"
    path.write_text(json.dumps({"folds": 3}))
    with pytest.raises(ValueError, match="Unknown config keys"):
        StudyConfig.from_json(path)


def test_from_json_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        StudyConfig.from_json(tmp_path / "nope.json")


def test_replace_ignores_none():
    config = StudyConfig().replace(n_splits=4, top_n=None, variants=["knn"])
    assert config.n_splits == 4
    assert config.top_n == 50
    assert config.variants == ("knn",)
    assert config.to_dict()["variants"] == ["knn"]


def test_unknown_variant_in_json_rejected_on_load(tmp_path):
    path = tmp_path / "study.json"
    path.write_text(json.dumps({"variants": ["lda", "xgboost"]}))
    with pytest.raises(ValueError, match="xgboost"):
        StudyConfig.from_json(path)
