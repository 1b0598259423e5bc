import numpy as np
import pytest

from lnpredict.preprocessing.folds import (
    Fold,
    FoldConfigurationError,
    check_folds,
    make_folds,
)

BALANCED = np.array([1] * 48 + [0] * 48)
UNBALANCED = np.array([1] * 23 + [0] * 17)


@pytest.mark.parametrize("labels,k,r", [(BALANCED, 6, 10), (UNBALANCED, 5, 3)])
def test_folds_partition_each_repeat(labels, k, r):
    folds = make_folds(labels, n_splits=k, n_repeats=r, seed=1)
    assert len(folds) == k * r
    for repeat in range(r):
        cells = [f for f in folds if f.repeat == repeat]
        assert [f.fold for f in cells] == list(range(k))
        held_out = np.concatenate([f.test_idx for f in cells])
        assert sorted(held_out.tolist()) == list(range(labels.size))
        for f in cells:
            assert np.intersect1d(f.train_idx, f.test_idx).size == 0
            assert f.train_idx.size + f.test_idx.size == labels.size


@pytest.mark.parametrize("labels,k", [(BALANCED, 6), (UNBALANCED, 5), (UNBALANCED, 7)])
def test_folds_are_stratified(labels, k):
    folds = make_folds(labels, n_splits=k, n_repeats=4, seed=3)
    share = labels.mean()
    for f in folds:
        assert abs(labels[f.test_idx].sum() - share * f.test_idx.size) <= 1
    check_folds(labels, folds)


def test_balanced_cohort_gives_even_folds():
    folds = make_folds(BALANCED, n_splits=6, n_repeats=10, seed=42)
    for f in folds:
        assert f.test_idx.size == 16
        assert BALANCED[f.test_idx].sum() == 8


def test_same_seed_same_folds():
    a = make_folds(UNBALANCED, n_splits=5, n_repeats=3, seed=9)
    b = make_folds(UNBALANCED, n_splits=5, n_repeats=3, seed=9)
    for fa, fb in zip(a, b):
        assert fa.key == fb.key
        np.testing.assert_array_equal(fa.test_idx, fb.test_idx)


def test_repeats_differ():
    folds = make_folds(BALANCED, n_splits=6, n_repeats=2, seed=0)
    first = [f.test_idx.tolist() for f in folds if f.repeat == 0]
    second = [f.test_idx.tolist() for f in folds if f.repeat == 1]
    assert first != second


def test_too_many_folds_for_minority_class():
    labels = np.array([1] * 4 + [0] * 30)
    with pytest.raises(FoldConfigurationError, match="only 4 samples"):
        make_folds(labels, n_splits=5, n_repeats=1)


@pytest.mark.parametrize("kwargs", [{"n_splits": 1}, {"n_repeats": 0}])
def test_bad_counts_rejected(kwargs):
    with pytest.raises(FoldConfigurationError):
        make_folds(BALANCED, **kwargs)


def test_single_class_rejected():
    with pytest.raises(FoldConfigurationError):
        make_folds(np.ones(20, dtype=int), n_splits=2, n_repeats=1)


def test_fold_configuration_error_is_value_error():
    assert issubclass(FoldConfigurationError, ValueError)


def test_check_folds_flags_unbalanced_fold():
    labels = np.array([1] * 6 + [0] * 6)
    folds = [
        Fold(0, 0, np.arange(6, 12), np.arange(0, 6)),
        Fold(0, 1, np.arange(0, 6), np.arange(6, 12)),
    ]
    with pytest.raises(FoldConfigurationError, match="not stratified"):
        check_folds(labels, folds)


def test_check_folds_flags_gap():
    labels = np.array([1, 0] * 6)
    folds = [Fold(0, 0, np.arange(6, 12), np.arange(0, 5))]
    with pytest.raises(FoldConfigurationError, match="does not partition"):
        check_folds(labels, folds)
