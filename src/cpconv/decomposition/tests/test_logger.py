import numpy as np
import pytest

from cpconv.convergence import DriftCheck, FitCheck
from cpconv.decomposition import cp
from cpconv.decomposition.logging import logger


@pytest.fixture
def X():
    return np.random.randn(6, 7, 8)


def test_fit_and_drift_loggers_follow_convergence_check(X):
    loggers = [logger.FitLogger(), logger.FitChangeLogger(), logger.FactorDriftLogger()]
    cp_als = cp.CP_ALS(3, convergence_check=FitCheck(-1, print_frequency=None), max_its=10, loggers=loggers)
    cp_als.fit(X)

    fit_logger, fit_change_logger, drift_logger = loggers
    assert fit_logger.log_iterations == list(range(10))
    assert fit_logger.log_metrics[-1] == cp_als.convergence_check.fit
    assert fit_change_logger.log_metrics[0] == np.inf
    assert drift_logger.log_metrics == [-1]*10


def test_drift_logger_logs_drift(X):
    drift_logger = logger.FactorDriftLogger()
    cp_als = cp.CP_ALS(3, convergence_check=DriftCheck(-1), max_its=5, loggers=[drift_logger])
    cp_als.fit(X)

    assert len(drift_logger.log_metrics) == 5
    assert drift_logger.log_metrics[-1] == cp_als.convergence_check.drift


def test_explained_variance_is_nondecreasing(X):
    variance_logger = logger.ExplainedVarianceLogger()
    cp_als = cp.CP_ALS(3, convergence_check=DriftCheck(-1), max_its=15, loggers=[variance_logger])
    cp_als.fit(X)

    assert np.all(np.diff(variance_logger.log_metrics) > -1e-10)


def test_logged_iterations_follow_decomposer():
    class Decomposer:
        current_iteration = 3
        explained_variance = 0.5
        convergence_check = DriftCheck()

    variance_logger = logger.ExplainedVarianceLogger()
    variance_logger.log(Decomposer())

    assert variance_logger.log_metrics == [0.5]
    assert variance_logger.log_iterations == [3]


def test_fit_logger_logs_minus_one_for_drift_check(X):
    fit_logger = logger.FitLogger()
    cp_als = cp.CP_ALS(3, convergence_check=DriftCheck(-1), max_its=4, loggers=[fit_logger])
    cp_als.fit(X)

    assert fit_logger.log_metrics == [-1]*4
