# portfolio_engine/services/optimization/matrix.py
"""
Small dense linear algebra in Decimal.

Only what the optimizer needs: vector products, matrix-vector products and
Gauss-Jordan inversion with partial pivoting. Matrices are lists of rows.

Conditioning check:
    During elimination every pivot magnitude is recorded. If any pivot is
    zero, or min|pivot| / max|pivot| falls below the threshold, the matrix
    is reported as singular.
"""

from decimal import Decimal
from typing import Sequence

from portfolio_engine.services.constants import ONE, SINGULARITY_THRESHOLD, ZERO
from portfolio_engine.services.exceptions import SingularCovarianceError

Vector = list[Decimal]
Matrix = list[list[Decimal]]


def dot(a: Sequence[Decimal], b: Sequence[Decimal]) -> Decimal:
    return sum((x * y for x, y in zip(a, b)), ZERO)


def mat_vec(matrix: Sequence[Sequence[Decimal]], vector: Sequence[Decimal]) -> Vector:
    return [dot(row, vector) for row in matrix]


def quadratic_form(matrix: Sequence[Sequence[Decimal]], vector: Sequence[Decimal]) -> Decimal:
    """v'Mv"""
    return dot(vector, mat_vec(matrix, vector))


def ones(n: int) -> Vector:
    return [ONE] * n


def identity(n: int) -> Matrix:
    return [[ONE if i == j else ZERO for j in range(n)] for i in range(n)]


def infinity_norm(matrix: Sequence[Sequence[Decimal]]) -> Decimal:
    """Largest absolute row sum; bounds the largest eigenvalue of a symmetric matrix."""
    return max((sum((abs(x) for x in row), ZERO) for row in matrix), default=ZERO)


def invert(
        matrix: Sequence[Sequence[Decimal]],
        threshold: Decimal = SINGULARITY_THRESHOLD,
        symbols: tuple[str, ...] = (),
) -> Matrix:
    """
    Invert a square matrix by Gauss-Jordan elimination with partial pivoting.

    Args:
        matrix: Square matrix (not modified)
        threshold: Minimum accepted min/max pivot ratio
        symbols: Labels reported in the error

    Returns:
        The inverse

    Raises:
        SingularCovarianceError: Zero pivot or pivot ratio below threshold
    """
    n = len(matrix)
    work = [list(row) + identity_row for row, identity_row in zip(matrix, identity(n))]
    pivots: list[Decimal] = []

    for col in range(n):
        pivot_row = max(range(col, n), key=lambda r: abs(work[r][col]))
        pivot = work[pivot_row][col]
        if pivot == ZERO:
            raise SingularCovarianceError(symbols, pivot_ratio=ZERO)
        pivots.append(abs(pivot))

        if pivot_row != col:
            work[col], work[pivot_row] = work[pivot_row], work[col]

        pivot_values = [x / pivot for x in work[col]]
        work[col] = pivot_values

        for r in range(n):
            if r == col:
                continue
            factor = work[r][col]
            if factor == ZERO:
                continue
            work[r] = [x - factor * p for x, p in zip(work[r], pivot_values)]

    ratio = min(pivots) / max(pivots)
    if ratio < threshold:
        raise SingularCovarianceError(symbols, pivot_ratio=ratio)

    return [row[n:] for row in work]
