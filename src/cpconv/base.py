"""
Dense tensor algebra needed by the ALS driver and the convergence checks.
"""


import numpy as np


def unfold(tensor, mode):
    """Matricise ``tensor`` with the rows indexed by ``mode``.

    The remaining modes index the columns in C order, which matches the row
    order of :func:`khatri_rao` applied to the remaining factor matrices.
    """
    return np.moveaxis(tensor, mode, 0).reshape(tensor.shape[mode], -1)


def fold(matrix, mode, shape):
    """Inverse of :func:`unfold`."""
    moved_shape = [shape[mode]] + [length for n, length in enumerate(shape) if n != mode]
    return np.moveaxis(matrix.reshape(moved_shape), 0, mode)


def khatri_rao(*matrices):
    """Column-wise Kronecker product. The rows of the last matrix vary fastest."""
    rank = matrices[0].shape[1]
    product = matrices[0]
    for matrix in matrices[1:]:
        product = (product[:, np.newaxis, :]*matrix[np.newaxis, :, :]).reshape(-1, rank)
    return product


def mttkrp(tensor, factor_matrices, mode):
    """Matricised tensor times the Khatri-Rao product of all factor matrices except ``mode``."""
    others = [factor_matrix for n, factor_matrix in enumerate(factor_matrices) if n != mode]
    return unfold(tensor, mode) @ khatri_rao(*others)


def gram_matrix(factor_matrix):
    return factor_matrix.T @ factor_matrix


def rightsolve(lhs, rhs):
    """Least squares solution of ``X @ lhs = rhs`` wrt X."""
    return rhs @ np.linalg.pinv(lhs)


def normalize_columns(matrix):
    """Scale the columns of ``matrix`` to unit length, returns the scaled matrix and the column norms.

    Zero columns are left as they are.
    """
    norms = np.linalg.norm(matrix, axis=0)
    return matrix/np.where(norms == 0, 1, norms), norms
