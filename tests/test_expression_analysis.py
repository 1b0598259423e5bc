import numpy as np
import pandas as pd
import pytest
from scipy import stats

from lnpredict.analysis.expression_analysis import (
    compute_group_means,
    fit_linear_models,
    moderated_t_test,
    rank_genes,
    top_table,
)


def test_coefficient_is_group_difference(expression_and_labels):
    expr, y = expression_and_labels
    fit = fit_linear_models(expr, y)
    expected = expr.loc[:, y == 1].mean(axis=1) - expr.loc[:, y == 0].mean(axis=1)
    np.testing.assert_allclose(fit.coefficients["label"], expected.to_numpy())
    np.testing.assert_allclose(fit.stdev_unscaled["label"], np.sqrt(1 / 20 + 1 / 20))
    assert (np.asarray(fit.df_residual) == 38).all()


def test_residual_sd_matches_pooled_sd(expression_and_labels):
    expr, y = expression_and_labels
    fit = fit_linear_models(expr, y)
    pos, neg = expr.loc[:, y == 1], expr.loc[:, y == 0]
    pooled = ((pos.var(axis=1) * 19 + neg.var(axis=1) * 19) / 38) ** 0.5
    np.testing.assert_allclose(np.asarray(fit.sigma, dtype=float), pooled.to_numpy())


def test_labels_matched_by_sample_id(expression_and_labels):
    expr, y = expression_and_labels
    shuffled = y.sample(frac=1.0, random_state=3)
    a = fit_linear_models(expr, y)
    b = fit_linear_models(expr, shuffled)
    np.testing.assert_allclose(a.coefficients["label"], b.coefficients["label"])


def test_missing_values_use_observed_samples(expression_and_labels):
    expr, y = expression_and_labels
    expr = expr.copy()
    expr.iloc[0, 0] = np.nan
    fit = fit_linear_models(expr, y)
    assert np.asarray(fit.df_residual)[0] == 37
    observed = expr.iloc[0].dropna()
    yo = y.loc[observed.index]
    assert fit.coefficients["label"].iloc[0] == pytest.approx(
        observed[yo == 1].mean() - observed[yo == 0].mean()
    )


def test_gene_observed_in_one_class_gets_no_statistic(expression_and_labels):
    expr, y = expression_and_labels
    expr = expr.copy()
    expr.loc["g010", y.index[y == 1]] = np.nan
    table = moderated_t_test(expr, y).table
    assert np.isnan(table.loc["g010", "t"])
    assert np.isnan(table.loc["g010", "adj.P.Val"])
    others = table.drop(index="g010")
    assert np.isfinite(others["t"]).all()
    assert others["adj.P.Val"].between(0, 1).all()


def test_single_class_rejected(expression_and_labels):
    expr, _ = expression_and_labels
    with pytest.raises(ValueError):
        fit_linear_models(expr, np.ones(expr.shape[1], dtype=int))


def test_label_count_mismatch_rejected(expression_and_labels):
    expr, _ = expression_and_labels
    with pytest.raises(ValueError):
        fit_linear_models(expr, [0, 1, 0])


def test_equal_variances_give_known_statistics():
    # every gene has within-group deviations -1, 0, 1, so all residual
    # variances are 1 and the prior degrees of freedom are infinite
    shifts = {"a": 0.0, "b": 1.0, "c": 2.0, "d": -3.0}
    samples = [f"s{i}" for i in range(6)]
    expr = pd.DataFrame(
        [[4, 5, 6, 4 + d, 5 + d, 6 + d] for d in shifts.values()],
        index=list(shifts), columns=samples, dtype=float,
    )
    y = [0, 0, 0, 1, 1, 1]

    res = moderated_t_test(expr, y)
    table = res.table
    assert np.isinf(res.df_prior)
    assert res.s2_prior == pytest.approx(1.0)
    np.testing.assert_allclose(table["logFC"], [0.0, 1.0, 2.0, -3.0], atol=1e-12)
    np.testing.assert_allclose(table["AveExpr"], [5.0, 5.5, 6.0, 3.5])
    expected_t = [0.0, 1.2247448713915890, 2.4494897427831781, -3.6742346141747673]
    np.testing.assert_allclose(table["t"], expected_t, atol=1e-10)
    # pooled residual df: 4 genes x 4 df
    np.testing.assert_allclose(
        table["P.Value"], 2 * stats.t.sf(np.abs(expected_t), 16), rtol=1e-8
    )
    assert table.loc["a", "P.Value"] == pytest.approx(1.0)
    ranked = top_table(res).index.tolist()
    assert ranked == ["d", "c", "b", "a"]
    assert table["B"].rank().tolist() == table["t"].abs().rank().tolist()


def test_t_uses_squeezed_variance(expression_and_labels):
    expr, y = expression_and_labels
    res = moderated_t_test(expr, y)
    fit = fit_linear_models(expr, y)
    assert res.df_prior > 0
    s2 = np.asarray(fit.sigma, dtype=float) ** 2
    df = np.asarray(fit.df_residual, dtype=float)
    if np.isinf(res.df_prior):
        post = np.full_like(s2, res.s2_prior)
    else:
        post = (df * s2 + res.df_prior * res.s2_prior) / (df + res.df_prior)
    expected = fit.coefficients["label"].to_numpy() / fit.stdev_unscaled["label"].to_numpy() / np.sqrt(post)
    np.testing.assert_allclose(res.table["t"].to_numpy(), expected)


def test_pvalues_bounded_and_adjusted(expression_and_labels):
    expr, y = expression_and_labels
    table = moderated_t_test(expr, y).table
    assert table["P.Value"].between(0, 1).all()
    assert table["adj.P.Val"].between(0, 1).all()
    assert (table["adj.P.Val"] >= table["P.Value"] - 1e-12).all()
    assert list(table.columns) == ["logFC", "AveExpr", "t", "P.Value", "adj.P.Val", "B"]


def test_informative_genes_rank_first(expression_and_labels, informative_genes):
    expr, y = expression_and_labels
    ranking = rank_genes(expr, y)
    assert set(ranking[:len(informative_genes)]) == set(informative_genes)
    assert len(ranking) == expr.shape[0]


def test_top_table_sorted_and_truncated(expression_and_labels):
    expr, y = expression_and_labels
    table = top_table(moderated_t_test(expr, y), n=15)
    assert len(table) == 15
    assert table["P.Value"].is_monotonic_increasing
    assert (table["logFC"].head(5) > 0).all()
    # B orders the same way as |t| for a constant design
    assert table["B"].iloc[0] > table["B"].iloc[-1]


def test_group_means(expression_and_labels):
    expr, y = expression_and_labels
    means = compute_group_means(expr, y)
    assert list(means.columns) == [0, 1]
    np.testing.assert_allclose(means[1], expr.loc[:, y == 1].mean(axis=1))
