import numpy as np

from .. import base
from ..convergence import DriftCheck, FitCheck, factor_norm
from .decompositions import KruskalTensor

__all__ = ['CP_ALS']


class CP_ALS:
    r"""Reference CP (CANDECOMP/PARAFAC) decomposition with alternating least squares.

    Every iteration updates the modes in order. Each updated factor matrix gets
    unit length columns, and the column norms become the weights. After the
    last mode the convergence check is called with the factor matrices
    followed by the weights. A ``FitCheck`` additionally receives the norm of
    the data once per fit and the MTTKRP of the last mode every iteration.

    Arguments:
    ----------
    rank: int
        Number of components.
    convergence_check: cpconv.convergence.BaseConvergenceCheck (optional, default=None)
        Reset at the start of every fit. If None, ``DriftCheck(1e-3)`` is used.
    max_its: int (optional, default=1000)
        Maximum number of iterations.
    init: str (optional, default='random')
        'random' or 'precomputed'.
    loggers: list(Logger) (optional, default=None)
        Objects with a ``log`` method that is called with the decomposer after
        every iteration. See ``cpconv.decomposition.logging.logger``.
    print_frequency: int (optional, default=None)
        How often the residual should be printed in the terminal.
        None and negative values leads to no printing.
    """
    def __init__(
        self,
        rank,
        convergence_check=None,
        max_its=1000,
        init='random',
        loggers=None,
        print_frequency=None,
    ):
        if convergence_check is None:
            convergence_check = DriftCheck(1e-3)
        if loggers is None:
            loggers = []
        if print_frequency is None:
            print_frequency = -1

        self.rank = rank
        self.convergence_check = convergence_check
        self.max_its = max_its
        self.init = init
        self.loggers = loggers
        self.print_frequency = print_frequency

    def fit(self, X, y=None, *, initial_decomposition=None):
        """Fit the model to the tensor ``X``. ``y`` is ignored.

        ``initial_decomposition`` is required, and only used, when ``init='precomputed'``.
        """
        self._init_fit(X, initial_decomposition)
        self._fit()
        return self

    def fit_transform(self, X, y=None, *, initial_decomposition=None):
        return self.fit(X, initial_decomposition=initial_decomposition).decomposition

    def _init_components(self, initial_decomposition):
        if self.init == 'random':
            return KruskalTensor.random_init(self.X.shape, self.rank)

        if self.init == 'precomputed':
            if initial_decomposition is None:
                raise ValueError('`initial_decomposition` must be given when init is precomputed.')
            if tuple(initial_decomposition.shape) != self.X.shape or initial_decomposition.rank != self.rank:
                raise ValueError(
                    f'The initial decomposition has shape {tuple(initial_decomposition.shape)} and rank '
                    f'{initial_decomposition.rank}, expected shape {self.X.shape} and rank {self.rank}.'
                )
            return KruskalTensor([factor_matrix.copy() for factor_matrix in initial_decomposition.factor_matrices])

        raise ValueError(f'Init method must be either `random` or `precomputed`, not {self.init!r}.')

    def _init_fit(self, X, initial_decomposition):
        self.X = np.asarray(X, dtype=float)
        self.X_norm = np.linalg.norm(self.X)
        self.decomposition = self._init_components(initial_decomposition)
        self.current_iteration = 0
        self.converged = False
        self._last_updated_mode = None
        self._mttkrp_cache = None

        self.convergence_check.reset()
        if isinstance(self.convergence_check, FitCheck):
            self.convergence_check.set_tensor_norm(self.X_norm)

    @property
    def factor_matrices(self):
        return self.decomposition.factor_matrices

    @property
    def weights(self):
        return self.decomposition.weights

    @property
    def reconstructed_X(self):
        return self.decomposition.construct_tensor()

    @property
    def SSE(self):
        """Sum squared error, from ||X - Y||^2 = ||X||^2 + ||Y||^2 - 2<X, Y> once a mode is updated."""
        if self._last_updated_mode is None:
            return np.linalg.norm(self.X - self.reconstructed_X)**2

        updated = self.factor_matrices[self._last_updated_mode]
        inner_product = np.sum(self.weights*np.sum(updated*self._mttkrp_cache, axis=0))
        model_norm = factor_norm(self.decomposition.convergence_factors())
        return max(self.X_norm**2 + model_norm**2 - 2*inner_product, 0)

    @property
    def residual_norm(self):
        return np.sqrt(self.SSE)

    @property
    def explained_variance(self):
        return 1 - self.SSE/self.X_norm**2

    def _update_factor(self, mode):
        lhs = np.ones((self.rank, self.rank))
        for n, factor_matrix in enumerate(self.factor_matrices):
            if n != mode:
                lhs *= base.gram_matrix(factor_matrix)
        rhs = base.mttkrp(self.X, self.factor_matrices, mode)

        factor_matrix, norms = base.normalize_columns(base.rightsolve(lhs, rhs))
        self.factor_matrices[mode][...] = factor_matrix
        self.weights[...] = norms
        self._last_updated_mode = mode
        self._mttkrp_cache = rhs

    def _update_convergence(self):
        if isinstance(self.convergence_check, FitCheck):
            # The check overwrites the buffer, and the cache is still needed for the SSE
            self.convergence_check.set_mttkrp(self._mttkrp_cache.copy())
        self.converged = self.convergence_check.check(self.decomposition.convergence_factors())

    def _fit(self):
        while self.current_iteration < self.max_its and not self.converged:
            for mode in range(self.X.ndim):
                self._update_factor(mode)
            self._update_convergence()

            if self.print_frequency > 0 and self.current_iteration % self.print_frequency == 0:
                print(f'    {self.current_iteration}: The residual norm is {self.residual_norm:4g}')

            for logger in self.loggers:
                logger.log(self)
            self.current_iteration += 1
