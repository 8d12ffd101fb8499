from abc import ABC, abstractmethod


class BaseLogger(ABC):
    """Collects one metric per iteration of a decomposer."""
    def __init__(self):
        self.log_metrics = []
        self.log_iterations = []

    @abstractmethod
    def _log(self, decomposer):
        pass

    def log(self, decomposer):
        self._log(decomposer)
        self.log_iterations.append(decomposer.current_iteration)


class ExplainedVarianceLogger(BaseLogger):
    def _log(self, decomposer):
        self.log_metrics.append(decomposer.explained_variance)


class ConvergenceCheckLogger(BaseLogger):
    """Logs an attribute of the decomposer's convergence check, -1 when the check does not provide it."""
    attribute = None

    def _log(self, decomposer):
        value = getattr(decomposer.convergence_check, self.attribute, None)
        if value is None:
            value = -1
        self.log_metrics.append(value)


class FitLogger(ConvergenceCheckLogger):
    attribute = 'fit'


class FitChangeLogger(ConvergenceCheckLogger):
    attribute = 'fit_change'


class FactorDriftLogger(ConvergenceCheckLogger):
    attribute = 'drift'
