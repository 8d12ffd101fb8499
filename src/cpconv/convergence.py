r"""
Convergence checks for CP (CANDECOMP/PARAFAC) models fitted with alternating least squares.

A convergence check is called once per ALS iteration with the current set of
factor matrices and returns True when the solver should stop. The factor set
is a list of the :math:`N` mode matrices (each of shape :math:`(I_n \times R)`)
followed by a trailing weight vector of length :math:`R`.
"""


from abc import ABC, abstractmethod

import numpy as np

from . import base

__all__ = ['BaseConvergenceCheck', 'DriftCheck', 'FitCheck', 'factor_norm']


def factor_norm(factors):
    r"""Frobenius norm of the tensor described by a factor set, without constructing it.

    Uses the identity

    .. math::

        \|\hat{\mathcal{T}}\|_F^2 = \sum_{r, s} (\mathbf{w}\mathbf{w}^T * A_1^T A_1 * \dots * A_N^T A_N)_{rs},

    where :math:`*` is the Hadamard product, so only :math:`R \times R` matrices are formed.

    Arguments:
    ----------
    factors: list(np.ndarray)
        Mode matrices followed by the weight vector. The trailing entry is
        viewed as a matrix with :math:`R` columns, so a weight vector yields
        the outer product :math:`\mathbf{w}\mathbf{w}^T`.
    """
    rank = factors[0].shape[1]
    last = np.reshape(factors[-1], (-1, rank))
    coefficients = base.gram_matrix(last)

    for factor_matrix in factors[:-1]:
        coefficients *= base.gram_matrix(factor_matrix)

    return np.sqrt(np.abs(coefficients.sum()))


class BaseConvergenceCheck(ABC):
    """Base class for ALS convergence checks.

    A check is stateful: one instance follows one solver run at a time, and
    it must not be called concurrently. Solvers call ``reset`` before a new run.

    Arguments:
    ----------
    tolerance: float
        Threshold below which the monitored quantity signals convergence.
    """
    def __init__(self, tolerance):
        self.tolerance = tolerance

    @abstractmethod
    def check(self, factors):
        """Return True if the iteration has converged."""
        pass

    @abstractmethod
    def reset(self):
        """Forget the history collected during the previous run."""
        pass

    def __call__(self, factors):
        return self.check(factors)


class DriftCheck(BaseConvergenceCheck):
    r"""Convergence check based on the change in the factor matrices.

    The drift between two consecutive iterations is

    .. math::

        \sum_{n=1}^{N} \sqrt{\frac{\|A_n^{(i)} - A_n^{(i+1)}\|_F^2}{I_n R}},

    i.e. the per-mode root mean squared change, summed over the modes. The
    trailing weight vector does not take part.

    The first call, and every call where the shape of a mode matrix changes
    (e.g. a new rank), measures the drift against zero matrices.

    Arguments:
    ----------
    tolerance: float (optional, default=1e-3)
        The iteration has converged once the drift is below this value.
    """
    def __init__(self, tolerance=1e-3):
        super().__init__(tolerance)
        self.reset()

    def reset(self):
        self.previous_factors = []
        self.drift = None
        self._tracked_shapes = None

    def _seed_history(self, factors):
        self.previous_factors = [np.zeros_like(factor_matrix, dtype=float) for factor_matrix in factors]
        self._tracked_shapes = tuple(factor_matrix.shape for factor_matrix in factors)

    @property
    def is_tracking(self):
        return self._tracked_shapes is not None

    def check(self, factors):
        mode_factors = factors[:len(factors) - 1]
        shapes = tuple(factor_matrix.shape for factor_matrix in mode_factors)
        if shapes != self._tracked_shapes:
            self._seed_history(mode_factors)

        drift = 0
        for n, factor_matrix in enumerate(mode_factors):
            change = (self.previous_factors[n] - factor_matrix).ravel()
            drift += np.sqrt(np.dot(change, change)/factor_matrix.size)
            self.previous_factors[n] = np.array(factor_matrix, dtype=float, copy=True)

        self.drift = drift
        return drift < self.tolerance


class FitCheck(BaseConvergenceCheck):
    r"""Convergence check based on the change in fit.

    The fit is :math:`1 - \|\mathcal{T} - \hat{\mathcal{T}}\|_F / \|\mathcal{T}\|_F`.
    It is computed from

    .. math::

        \|\mathcal{T} - \hat{\mathcal{T}}\|_F^2 = \|\mathcal{T}\|_F^2
        + \|\hat{\mathcal{T}}\|_F^2 - 2 \langle \mathcal{T}, \hat{\mathcal{T}} \rangle,

    where the inner product is obtained from the matricised tensor times
    Khatri-Rao product (MTTKRP) of the last mode, and the model norm from
    :func:`factor_norm`.

    Before the first call the solver must call ``set_tensor_norm``, and before
    every call ``set_mttkrp`` with the MTTKRP it used to update the last mode.
    The check takes ownership of that buffer and overwrites it in place.
    Without a tensor norm the fit is NaN, and a NaN fit never converges.

    Arguments:
    ----------
    tolerance: float (optional, default=1e-4)
        The iteration has converged once the absolute fit change is below this value.
    print_frequency: int (optional, default=1)
        How often the fit and fit change should be printed in the terminal.
        None and negative values leads to no printing.
    """
    def __init__(self, tolerance=1e-4, print_frequency=1):
        super().__init__(tolerance)
        if print_frequency is None:
            print_frequency = -1
        self.print_frequency = print_frequency

        self.tensor_norm = np.nan
        self.reset()

    def reset(self):
        self.previous_fit = None
        self.fit = None
        self.fit_change = None
        self.iteration = 0
        self._mttkrp = None

    def set_tensor_norm(self, tensor_norm):
        """Set the Frobenius norm of the tensor being decomposed."""
        self.tensor_norm = tensor_norm

    def set_mttkrp(self, mttkrp):
        """Hand the last mode's MTTKRP to the check. It is consumed by the next ``check``."""
        self._mttkrp = mttkrp

    def consume_mttkrp(self):
        """Return the stored MTTKRP and release it."""
        if self._mttkrp is None:
            raise ValueError('No MTTKRP has been set since the last check, call `set_mttkrp` first.')
        mttkrp, self._mttkrp = self._mttkrp, None
        return mttkrp

    def inner_product(self, factors):
        r"""Compute :math:`\langle \mathcal{T}, \hat{\mathcal{T}} \rangle` from the stored MTTKRP."""
        n = len(factors) - 2
        rank = factors[n].shape[1]

        mttkrp = self.consume_mttkrp()
        mttkrp *= factors[n]
        column_sums = mttkrp.reshape(-1, rank).sum(axis=0)

        return np.dot(column_sums, np.ravel(factors[n + 1]))

    def check(self, factors):
        iprod = self.inner_product(factors)
        norm_factors = factor_norm(factors)
        # Rounding can push the squared residual of a near perfect model below zero
        squared_residual = max(self.tensor_norm**2 + norm_factors**2 - 2*iprod, 0)
        norm_residual = np.sqrt(squared_residual)
        fit = 1 - norm_residual/self.tensor_norm

        if self.previous_fit is None:
            fit_change = np.inf
        else:
            fit_change = abs(self.previous_fit - fit)
        self.previous_fit = fit
        self.fit = fit
        self.fit_change = fit_change

        if self.print_frequency > 0 and self.iteration % self.print_frequency == 0:
            print(f'    {self.iteration}: The fit is {fit:4g}, fit change is {fit_change:4g}')

        if fit_change < self.tolerance:
            self.iteration = 0
            return True

        self.iteration += 1
        return False
