# portfolio_engine/services/optimization/optimizer.py
"""
Mean-variance portfolio optimization.

Finds the minimum-variance, tangency (maximum Sharpe) and maximum-return
portfolios and the efficient frontier between them, for any number of
assets, from expected returns and a covariance matrix.

Two solution paths:

    Closed form (N ≤ ANALYTICAL_ASSET_LIMIT):
        Minimum variance   w ∝ Σ⁻¹1
        Tangency           w ∝ Σ⁻¹(μ - rf)
        Frontier at m      w = [(C - Bm)Σ⁻¹1 + (Am - B)Σ⁻¹μ] / D
            A = 1'Σ⁻¹1, B = 1'Σ⁻¹μ, C = μ'Σ⁻¹μ, D = AC - B²

    Iterative search (large N, or long-only when the closed form shorts):
        Projected gradient descent on the probability simplex minimizing
            f(w) = w'Σw - q·μ'w
        with step 1/L, L = 2‖Σ‖∞, sweeping the risk tolerance q from 0
        (minimum variance) to the value where the maximum-return corner
        becomes optimal. The tangency portfolio is the best-Sharpe sample,
        refined by golden-section search on q.

Every weight vector is normalized to sum to exactly 1; the rounding residual
goes to the largest weight.

Portfolio Return:   E[Rp] = Σ(wi × E[Ri])
Portfolio Variance: σp² = w'Σw
Sharpe Ratio:       S = (E[Rp] - Rf) / σp
"""

import logging
from decimal import Decimal
from typing import Mapping, Sequence

from portfolio_engine.services.analytics.types import CovarianceMatrix, Ratio
from portfolio_engine.services.constants import (
    ANALYTICAL_ASSET_LIMIT,
    DEFAULT_FRONTIER_POINTS,
    DEFAULT_RISK_FREE_RATE,
    ONE,
    OPTIMIZER_MAX_ITERATIONS,
    OPTIMIZER_TOLERANCE,
    TANGENCY_SEARCH_MAX_ITERATIONS,
    TANGENCY_SEARCH_TOLERANCE,
    ZERO,
)
from portfolio_engine.services.exceptions import (
    InvalidInputError,
    NoConvergenceError,
    SingularCovarianceError,
)
from portfolio_engine.services.numeric import decimal_sqrt, quantize_ratio
from portfolio_engine.services.optimization.matrix import (
    Matrix,
    Vector,
    dot,
    infinity_norm,
    invert,
    mat_vec,
    ones,
    quadratic_form,
)
from portfolio_engine.services.optimization.types import OptimizationResult, PortfolioAllocation
from portfolio_engine.services.results import UNDEFINED, Undefined, as_result

logger = logging.getLogger(__name__)

_TWO = Decimal("2")
_GOLDEN = (decimal_sqrt(Decimal("5")) - ONE) / _TWO


# =============================================================================
# WEIGHT HELPERS
# =============================================================================

def normalize_weights(weights: Sequence[Decimal]) -> Vector:
    """
    Scale weights to sum to 1, round them, and push the rounding residual
    onto the largest weight so the sum is exactly 1.

    Raises:
        InvalidInputError: Weights sum to zero
    """
    total = sum(weights, ZERO)
    if total == ZERO:
        raise InvalidInputError("Weights sum to zero and cannot be normalized", field="weights")

    rounded = [quantize_ratio(w / total) for w in weights]
    residual = ONE - sum(rounded, ZERO)
    if residual != ZERO:
        largest = max(range(len(rounded)), key=lambda i: abs(rounded[i]))
        rounded[largest] += residual
    return rounded


def project_to_simplex(vector: Sequence[Decimal]) -> Vector:
    """
    Euclidean projection onto {w : w ≥ 0, Σw = 1} (sort-based method).

    θ is chosen so that Σ max(v_i - θ, 0) = 1.
    """
    ordered = sorted(vector, reverse=True)
    running = ZERO
    theta = ZERO
    for k, u in enumerate(ordered, start=1):
        running += u
        candidate = (running - ONE) / Decimal(k)
        if u - candidate > ZERO:
            theta = candidate
    return [max(v - theta, ZERO) for v in vector]


# =============================================================================
# OPTIMIZER
# =============================================================================

class PortfolioOptimizer:
    """
    Mean-variance optimizer over a validated universe.

    Construction validates the inputs and inverts the covariance once, so
    a singular or ill-conditioned matrix is rejected before any solve.

    Usage:
        optimizer = PortfolioOptimizer(expected_returns, covariance, risk_free_rate)
        min_var = optimizer.minimum_variance()
        tangency = optimizer.tangency()

    Raises:
        InvalidInputError: Symbols mismatch, asymmetric matrix, negative variance
        SingularCovarianceError: Covariance not invertible
    """

    def __init__(
            self,
            expected_returns: Mapping[str, Decimal],
            covariance: CovarianceMatrix,
            risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
            allow_short: bool = False,
            max_iterations: int = OPTIMIZER_MAX_ITERATIONS,
            tolerance: Decimal = OPTIMIZER_TOLERANCE,
    ):
        self.symbols = covariance.symbols
        self._validate(expected_returns, covariance)

        self.mu: Vector = [expected_returns[s] for s in self.symbols]
        self.sigma: Matrix = [list(row) for row in covariance.values]
        self.risk_free_rate = risk_free_rate
        self.allow_short = allow_short
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.warnings: list[str] = []
        self.used_iterative = False

        self.inverse = invert(self.sigma, symbols=self.symbols)
        self.analytical = self.size <= ANALYTICAL_ASSET_LIMIT

        if not self.analytical and allow_short:
            self.warnings.append(
                f"{self.size} assets exceed the closed-form limit of {ANALYTICAL_ASSET_LIMIT}; "
                "iterative search is long-only"
            )

        self._step = ONE / (_TWO * infinity_norm(self.sigma))
        self._q_max: Decimal | None = None

    @property
    def size(self) -> int:
        return len(self.symbols)

    def _validate(self, expected_returns: Mapping[str, Decimal], covariance: CovarianceMatrix) -> None:
        if len(self.symbols) < 2:
            raise InvalidInputError(
                f"Optimization needs at least 2 assets, got {len(self.symbols)}",
                field="covariance",
            )
        if set(expected_returns) != set(self.symbols):
            missing = sorted(set(self.symbols) - set(expected_returns))
            extra = sorted(set(expected_returns) - set(self.symbols))
            raise InvalidInputError(
                f"Expected returns do not match covariance symbols "
                f"(missing: {missing}, unexpected: {extra})",
                field="expected_returns",
            )
        for row in covariance.values:
            if any(isinstance(x, Undefined) for x in row):
                raise InvalidInputError("Covariance contains undefined entries", field="covariance")
        if not covariance.is_symmetric():
            raise InvalidInputError("Covariance matrix is not symmetric", field="covariance")
        for i, s in enumerate(self.symbols):
            if covariance.values[i][i] < ZERO:
                raise InvalidInputError(f"Negative variance for {s}", field="covariance")

    # -------------------------------------------------------------------------
    # Allocation construction
    # -------------------------------------------------------------------------

    def allocation(self, weights: Sequence[Decimal]) -> PortfolioAllocation:
        """Normalize weights and attach their return, volatility and Sharpe."""
        w = normalize_weights(weights)
        expected = dot(self.mu, w)
        variance = max(quadratic_form(self.sigma, w), ZERO)
        volatility = decimal_sqrt(variance)
        return PortfolioAllocation(
            weights=dict(zip(self.symbols, w)),
            expected_return=expected,
            expected_volatility=volatility,
            sharpe_ratio=self._sharpe(expected, volatility),
        )

    def _sharpe(self, expected: Decimal, volatility: Decimal) -> Ratio:
        if volatility == ZERO:
            return UNDEFINED
        return (expected - self.risk_free_rate) / volatility

    # -------------------------------------------------------------------------
    # Closed form
    # -------------------------------------------------------------------------

    def _closed_form_direction(self, vector: Sequence[Decimal]) -> tuple[Vector, Decimal]:
        """Σ⁻¹v and its component sum 1'Σ⁻¹v."""
        z = mat_vec(self.inverse, vector)
        return z, sum(z, ZERO)

    def _acceptable(self, weights: Sequence[Decimal]) -> bool:
        return self.allow_short or all(w >= ZERO for w in weights)

    # -------------------------------------------------------------------------
    # Iterative search
    # -------------------------------------------------------------------------

    def solve(self, q: Decimal, start: Sequence[Decimal] | None = None) -> Vector:
        """
        Minimize w'Σw - q·μ'w over the simplex by projected gradient.

        Args:
            q: Risk tolerance (0 = minimum variance)
            start: Warm-start weights (defaults to equal weights)

        Raises:
            NoConvergenceError: Weight change still above tolerance at the cap
        """
        n = self.size
        w = list(start) if start is not None else [ONE / Decimal(n)] * n
        w = project_to_simplex(w)

        for _ in range(self.max_iterations):
            sigma_w = mat_vec(self.sigma, w)
            gradient = [_TWO * sw - q * m for sw, m in zip(sigma_w, self.mu)]
            stepped = [wi - self._step * g for wi, g in zip(w, gradient)]
            nxt = project_to_simplex(stepped)
            delta = max(abs(a - b) for a, b in zip(nxt, w))
            w = nxt
            if delta < self.tolerance:
                return w

        logger.warning(f"Projected gradient did not converge at q={q}")
        raise NoConvergenceError(
            "projected gradient",
            self.max_iterations,
            reason=f"weight change above {self.tolerance} at q={q}",
        )

    def _max_return_index(self) -> int:
        best = 0
        for i, m in enumerate(self.mu):
            if m > self.mu[best]:
                best = i
        return best

    def max_tolerance(self) -> Decimal:
        """
        Smallest q at which the maximum-return corner is optimal.

        At w = e_k the corner is optimal once, for every j with μ_j < μ_k,
            q ≥ 2(Σ_kk - Σ_jk) / (μ_k - μ_j)
        """
        if self._q_max is None:
            k = self._max_return_index()
            q = ZERO
            for j in range(self.size):
                gap = self.mu[k] - self.mu[j]
                if gap > ZERO:
                    q = max(q, _TWO * (self.sigma[k][k] - self.sigma[j][k]) / gap)
            self._q_max = q
        return self._q_max

    def _sweep(self, points: int) -> list[tuple[Decimal, Vector]]:
        """Solve at evenly spaced q from 0 to max_tolerance, warm-starting each."""
        q_max = self.max_tolerance()
        samples: list[tuple[Decimal, Vector]] = []
        w: Vector | None = None
        for i in range(points):
            q = q_max * Decimal(i) / Decimal(points - 1)
            w = self.solve(q, w)
            samples.append((q, w))
        return samples

    def _sharpe_key(self, weights: Sequence[Decimal]) -> Decimal | None:
        allocation = self.allocation(weights)
        if isinstance(allocation.sharpe_ratio, Undefined):
            return None
        return allocation.sharpe_ratio

    def _golden_section(self, low: Decimal, high: Decimal, start: Sequence[Decimal]) -> Vector:
        """Maximize Sharpe over q in [low, high]."""
        best_w = list(start)
        best_s = self._sharpe_key(best_w)

        def evaluate(q: Decimal) -> tuple[Decimal | None, Vector]:
            nonlocal best_w, best_s
            w = self.solve(q, best_w)
            s = self._sharpe_key(w)
            if s is not None and (best_s is None or s > best_s):
                best_w, best_s = w, s
            return s, w

        def below(a: Decimal | None, b: Decimal | None) -> bool:
            if a is None:
                return b is not None
            return b is not None and a < b

        c = high - _GOLDEN * (high - low)
        d = low + _GOLDEN * (high - low)
        sc, _ = evaluate(c)
        sd, _ = evaluate(d)

        for _ in range(TANGENCY_SEARCH_MAX_ITERATIONS):
            if high - low <= TANGENCY_SEARCH_TOLERANCE * max(ONE, abs(high)):
                break
            if below(sc, sd):
                low, c, sc = c, d, sd
                d = low + _GOLDEN * (high - low)
                sd, _ = evaluate(d)
            else:
                high, d, sd = d, c, sc
                c = high - _GOLDEN * (high - low)
                sc, _ = evaluate(c)

        return best_w

    def _iterative_tangency(self, samples: Sequence[tuple[Decimal, Vector]]) -> Vector:
        best = None
        best_s = None
        for i, (_, w) in enumerate(samples):
            s = self._sharpe_key(w)
            if s is not None and (best_s is None or s > best_s):
                best, best_s = i, s
        if best is None:
            return list(samples[0][1])

        low = samples[max(best - 1, 0)][0]
        high = samples[min(best + 1, len(samples) - 1)][0]
        if high == low:
            return list(samples[best][1])
        return self._golden_section(low, high, samples[best][1])

    # -------------------------------------------------------------------------
    # Key portfolios
    # -------------------------------------------------------------------------

    def minimum_variance(self) -> PortfolioAllocation:
        if self.analytical:
            z, total = self._closed_form_direction(ones(self.size))
            if total <= ZERO:
                raise SingularCovarianceError(self.symbols)
            weights = [x / total for x in z]
            if self._acceptable(weights):
                return self.allocation(weights)
            logger.debug("Closed-form minimum variance has short positions; using iterative search")

        self.used_iterative = True
        return self.allocation(self.solve(ZERO))

    def maximum_return(self) -> PortfolioAllocation:
        k = self._max_return_index()
        return self.allocation([ONE if i == k else ZERO for i in range(self.size)])

    def tangency(self, samples: Sequence[tuple[Decimal, Vector]] | None = None) -> PortfolioAllocation | None:
        """
        Highest-Sharpe portfolio.

        Returns:
            The allocation, or None when shorts are allowed and the
            risk-free rate is at or above the minimum-variance return
            (1'Σ⁻¹(μ - rf) ≤ 0)
        """
        if self.analytical:
            excess = [m - self.risk_free_rate for m in self.mu]
            z, total = self._closed_form_direction(excess)
            if total > ZERO:
                weights = [x / total for x in z]
                if self._acceptable(weights):
                    return self.allocation(weights)
                logger.debug("Closed-form tangency has short positions; using iterative search")
            elif self.allow_short:
                self.warnings.append(
                    "Risk-free rate is at or above the minimum-variance return; "
                    "no tangency portfolio exists"
                )
                return None
            else:
                logger.debug("Closed-form tangency undefined; using iterative search")

        self.used_iterative = True
        if samples is None:
            samples = self._sweep(DEFAULT_FRONTIER_POINTS)
        return self.allocation(self._iterative_tangency(samples))

    def target_return(self, target: Decimal) -> PortfolioAllocation:
        """
        Minimum-variance portfolio earning `target`.

        Raises:
            InvalidInputError: Target outside the range of asset returns
            NoConvergenceError: Iterative search failed
        """
        low_mu, high_mu = min(self.mu), max(self.mu)
        if not (low_mu <= target <= high_mu):
            raise InvalidInputError(
                f"Target return {target} outside asset range [{low_mu}, {high_mu}]",
                field="target_return",
            )

        if self.analytical:
            weights = self._frontier_weights(target)
            if weights is not None and self._acceptable(weights):
                return self.allocation(weights)

        # Long-only: expected return rises with q; bisect q until it hits target
        self.used_iterative = True
        w = self.solve(ZERO)
        if dot(self.mu, w) >= target:
            return self.allocation(w)

        low, high = ZERO, self.max_tolerance()
        w_high = self.solve(high, w)
        for _ in range(TANGENCY_SEARCH_MAX_ITERATIONS):
            mid = (low + high) / _TWO
            w_mid = self.solve(mid, w)
            if dot(self.mu, w_mid) < target:
                low, w = mid, w_mid
            else:
                high, w_high = mid, w_mid
            if high - low <= TANGENCY_SEARCH_TOLERANCE * max(ONE, high):
                break
        return self.allocation(w_high)

    # -------------------------------------------------------------------------
    # Frontier
    # -------------------------------------------------------------------------

    def _frontier_constants(self) -> tuple[Vector, Vector, Decimal, Decimal, Decimal, Decimal]:
        inv_ones = mat_vec(self.inverse, ones(self.size))
        inv_mu = mat_vec(self.inverse, self.mu)
        a = sum(inv_ones, ZERO)
        b = sum(inv_mu, ZERO)
        c = dot(self.mu, inv_mu)
        return inv_ones, inv_mu, a, b, c, a * c - b * b

    def _frontier_weights(self, target: Decimal) -> Vector | None:
        inv_ones, inv_mu, a, b, c, d = self._frontier_constants()
        if d == ZERO:
            return None
        return [((c - b * target) * x + (a * target - b) * y) / d for x, y in zip(inv_ones, inv_mu)]

    def frontier(
            self,
            points: int,
            minimum_variance: PortfolioAllocation,
            maximum_return: PortfolioAllocation,
    ) -> tuple[list[PortfolioAllocation], list[tuple[Decimal, Vector]] | None]:
        """
        `points` allocations from minimum variance to maximum return.

        Returns:
            (allocations, q-sweep samples or None when closed form was used)
        """
        if self.analytical and self.allow_short:
            _, _, a, b, _, d = self._frontier_constants()
            start = b / a
            end = maximum_return.expected_return
            if d == ZERO or end <= start:
                self.warnings.append("Frontier is degenerate; all assets share one return profile")
                return [minimum_variance], None

            allocations = [minimum_variance]
            for i in range(1, points - 1):
                target = start + (end - start) * Decimal(i) / Decimal(points - 1)
                allocations.append(self.allocation(self._frontier_weights(target)))
            allocations.append(self.allocation(self._frontier_weights(end)))
            return allocations, None

        samples = self._sweep(points)
        allocations = [minimum_variance]
        allocations.extend(self.allocation(w) for _, w in samples[1:-1])
        allocations.append(maximum_return)
        return allocations, samples


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

@as_result
def efficient_frontier(
        expected_returns: Mapping[str, Decimal],
        covariance: CovarianceMatrix,
        risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
        points: int = DEFAULT_FRONTIER_POINTS,
        allow_short: bool = False,
) -> OptimizationResult:
    """
    Compute the efficient frontier and its key portfolios.

    Args:
        expected_returns: symbol → expected annual return
        covariance: Annualized covariance matrix over the same symbols
        risk_free_rate: Annual risk-free rate for Sharpe ratios
        points: Number of frontier allocations (≥ 2)
        allow_short: Permit negative weights

    Returns:
        Ok(OptimizationResult) or Err(InvalidInput / SingularCovariance /
        NoConvergence)
    """
    if points < 2:
        raise InvalidInputError(f"Frontier needs at least 2 points, got {points}", field="points")

    optimizer = PortfolioOptimizer(expected_returns, covariance, risk_free_rate, allow_short)

    min_var = optimizer.minimum_variance()
    max_ret = optimizer.maximum_return()
    allocations, samples = optimizer.frontier(points, min_var, max_ret)
    tangency = optimizer.tangency(samples)

    method = "iterative" if optimizer.used_iterative else "analytical"
    logger.info(
        f"Efficient frontier for {optimizer.size} assets: "
        f"{len(allocations)} points, method={method}"
    )

    return OptimizationResult(
        minimum_variance=min_var,
        tangency=tangency,
        maximum_return=max_ret,
        frontier=tuple(allocations),
        method=method,
        warnings=tuple(optimizer.warnings),
    )


@as_result
def minimum_variance_portfolio(
        expected_returns: Mapping[str, Decimal],
        covariance: CovarianceMatrix,
        risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
        allow_short: bool = False,
) -> PortfolioAllocation:
    """
    Lowest-volatility fully invested portfolio.

    Returns:
        Ok(PortfolioAllocation) or Err(InvalidInput / SingularCovariance /
        NoConvergence)
    """
    return PortfolioOptimizer(expected_returns, covariance, risk_free_rate, allow_short).minimum_variance()


@as_result
def tangency_portfolio(
        expected_returns: Mapping[str, Decimal],
        covariance: CovarianceMatrix,
        risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
        allow_short: bool = False,
) -> PortfolioAllocation:
    """
    Maximum-Sharpe portfolio.

    Returns:
        Ok(PortfolioAllocation) or Err(InvalidInput when no tangency
        portfolio exists, SingularCovariance, NoConvergence)
    """
    optimizer = PortfolioOptimizer(expected_returns, covariance, risk_free_rate, allow_short)
    allocation = optimizer.tangency()
    if allocation is None:
        raise InvalidInputError(
            f"No tangency portfolio: risk-free rate {risk_free_rate} is at or above "
            "the minimum-variance return",
            field="risk_free_rate",
        )
    return allocation


@as_result
def maximum_return_portfolio(
        expected_returns: Mapping[str, Decimal],
        covariance: CovarianceMatrix,
        risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
) -> PortfolioAllocation:
    """
    All weight in the highest-return asset (first symbol on ties).

    Returns:
        Ok(PortfolioAllocation) or Err(InvalidInput / SingularCovariance)
    """
    return PortfolioOptimizer(expected_returns, covariance, risk_free_rate).maximum_return()


@as_result
def target_return_portfolio(
        expected_returns: Mapping[str, Decimal],
        covariance: CovarianceMatrix,
        target_return: Decimal,
        risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
        allow_short: bool = False,
) -> PortfolioAllocation:
    """
    Minimum-variance portfolio with the given expected return.

    Returns:
        Ok(PortfolioAllocation) or Err(InvalidInput for a target outside the
        asset return range, SingularCovariance, NoConvergence)
    """
    optimizer = PortfolioOptimizer(expected_returns, covariance, risk_free_rate, allow_short)
    return optimizer.target_return(target_return)
