import numpy as np

from .. import base

__all__ = ['KruskalTensor']


class KruskalTensor:
    r"""Weighted sum of rank one tensors,

    .. math::

        \hat{\mathcal{T}} = \sum_{r=1}^R w_r \mathbf{a}^{(1)}_r \circ \dots \circ \mathbf{a}^{(N)}_r.

    Arguments:
    ----------
    factor_matrices: list(np.ndarray)
        One matrix of shape :math:`(I_n \times R)` per mode.
    weights: np.ndarray (optional, default=None)
        The :math:`R` component weights. If None, the weights are all 1.
    """
    def __init__(self, factor_matrices, weights=None):
        rank = factor_matrices[0].shape[1]
        for n, factor_matrix in enumerate(factor_matrices):
            if factor_matrix.shape[1] != rank:
                raise ValueError(
                    f'Factor matrix {n} has {factor_matrix.shape[1]} columns, but factor matrix 0 has {rank}.'
                )
        if weights is None:
            weights = np.ones(rank)
        elif len(weights) != rank:
            raise ValueError(f'Got {len(weights)} weights for a rank {rank} decomposition.')

        self.factor_matrices = [np.asarray(factor_matrix, dtype=float) for factor_matrix in factor_matrices]
        self.weights = np.array(weights, dtype=float)

    @classmethod
    def random_init(cls, sizes, rank):
        """Standard normal factor matrices with unit length columns and unit weights."""
        factor_matrices = [base.normalize_columns(np.random.randn(size, rank))[0] for size in sizes]
        return cls(factor_matrices)

    @property
    def rank(self):
        return self.weights.shape[0]

    @property
    def shape(self):
        return tuple(factor_matrix.shape[0] for factor_matrix in self.factor_matrices)

    def construct_tensor(self):
        first, *others = self.factor_matrices
        unfolded = (first*self.weights) @ base.khatri_rao(*others).T
        return base.fold(unfolded, 0, self.shape)

    def convergence_factors(self):
        """The factor matrices followed by the weights, the layout the convergence checks expect."""
        return [*self.factor_matrices, self.weights]
