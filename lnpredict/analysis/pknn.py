# lnpredict/analysis/pknn.py

from typing import Optional, Sequence
import numpy as np
from scipy.optimize import minimize_scalar
from scipy.special import logsumexp
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.neighbors import NearestNeighbors
from sklearn.utils.multiclass import unique_labels
from sklearn.utils.validation import check_array, check_is_fitted, check_X_y


class ProbabilisticKNN(ClassifierMixin, BaseEstimator):
    """
    Probabilistic nearest-neighbour classifier.

    The probability of class c at a point is proportional to
    exp(beta * share of its k nearest training neighbours in class c).
    k and the interaction strength beta are chosen by maximising the
    leave-one-out pseudo-likelihood of the training labels.

    :param k_values: candidate neighbourhood sizes; default 1..min(15, n-1)
    :param beta_max: upper bound of the beta search
    """

    def __init__(
        self,
        k_values: Optional[Sequence[int]] = None,
        beta_max: float = 50.0
    ):
        self.k_values = k_values
        self.beta_max = beta_max

    def _neighbour_shares(self, neighbours: np.ndarray, k: int) -> np.ndarray:
        # share of the first k neighbours falling in each class
        codes = self._y_codes[neighbours[:, :k]]
        shares = np.zeros((neighbours.shape[0], len(self.classes_)))
        for c in range(len(self.classes_)):
            shares[:, c] = (codes == c).mean(axis=1)
        return shares

    def _pseudo_loglik(self, shares: np.ndarray, beta: float) -> float:
        scores = beta * shares
        log_norm = logsumexp(scores, axis=1)
        own = scores[np.arange(scores.shape[0]), self._y_codes]
        return float((own - log_norm).sum())

    def fit(self, X, y):
        X, y = check_X_y(X, y)
        self.classes_ = unique_labels(y)
        if len(self.classes_) < 2:
            raise ValueError("ProbabilisticKNN needs at least two classes")
        self._y_codes = np.searchsorted(self.classes_, y)
        n = X.shape[0]
        if n < 3:
            raise ValueError(f"ProbabilisticKNN needs at least 3 samples, got {n}")

        if self.k_values is None:
            candidates = list(range(1, min(15, n - 1) + 1))
        else:
            candidates = sorted({int(k) for k in self.k_values if 1 <= int(k) < n})
        if not candidates:
            raise ValueError("no usable neighbourhood size for this training set")

        self._nn = NearestNeighbors(n_neighbors=max(candidates)).fit(X)
        # drop self-matches for leave-one-out
        _, idx = self._nn.kneighbors(X, n_neighbors=max(candidates) + 1)
        loo = np.empty((n, max(candidates)), dtype=int)
        for i in range(n):
            row = idx[i][idx[i] != i]
            loo[i] = row[:max(candidates)]

        best = (-np.inf, candidates[0], 0.0)
        for k in candidates:
            shares = self._neighbour_shares(loo, k)
            res = minimize_scalar(
                lambda b: -self._pseudo_loglik(shares, b),
                bounds=(0.0, self.beta_max),
                method="bounded",
            )
            loglik = -float(res.fun)
            if loglik > best[0]:
                best = (loglik, k, float(res.x))

        self.pseudo_loglik_, self.k_, self.beta_ = best
        self.n_features_in_ = X.shape[1]
        return self

    def predict_proba(self, X) -> np.ndarray:
        check_is_fitted(self, "beta_")
        X = check_array(X)
        _, idx = self._nn.kneighbors(X, n_neighbors=self.k_)
        scores = self.beta_ * self._neighbour_shares(idx, self.k_)
        return np.exp(scores - logsumexp(scores, axis=1, keepdims=True))

    def predict(self, X) -> np.ndarray:
        proba = self.predict_proba(X)
        return self.classes_[proba.argmax(axis=1)]
