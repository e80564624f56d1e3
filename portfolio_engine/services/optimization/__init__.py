# portfolio_engine/services/optimization/__init__.py
"""
Mean-variance portfolio optimization.

- optimizer.py: PortfolioOptimizer and the Result-returning operations
- matrix.py: Small Decimal linear algebra (Gauss-Jordan inverse)
- types.py: PortfolioAllocation, OptimizationResult

Usage:
    from portfolio_engine.services.optimization import efficient_frontier

    result = efficient_frontier(expected_returns, covariance, points=20)
"""

from portfolio_engine.services.optimization.optimizer import (
    PortfolioOptimizer,
    efficient_frontier,
    maximum_return_portfolio,
    minimum_variance_portfolio,
    normalize_weights,
    tangency_portfolio,
    target_return_portfolio,
)
from portfolio_engine.services.optimization.types import OptimizationResult, PortfolioAllocation

__all__ = [
    "PortfolioOptimizer",
    "efficient_frontier",
    "minimum_variance_portfolio",
    "tangency_portfolio",
    "maximum_return_portfolio",
    "target_return_portfolio",
    "normalize_weights",
    "PortfolioAllocation",
    "OptimizationResult",
]
