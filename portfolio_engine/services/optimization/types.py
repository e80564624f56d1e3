# portfolio_engine/services/optimization/types.py
"""
Data types for the portfolio optimizer.

Architecture:
    - PortfolioAllocation: Weights plus their expected return, volatility, Sharpe
    - OptimizationResult: Min-variance, tangency and max-return portfolios with
      the frontier between them
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping

from portfolio_engine.services.analytics.types import Ratio


@dataclass(frozen=True)
class PortfolioAllocation:
    """
    A fully invested portfolio.

    Attributes:
        weights: symbol → weight; weights sum to exactly 1
        expected_return: μ'w (annual, same units as the inputs)
        expected_volatility: sqrt(w'Σw)
        sharpe_ratio: (expected_return - rf) / expected_volatility,
                      UNDEFINED for a riskless allocation
    """
    weights: Mapping[str, Decimal]
    expected_return: Decimal
    expected_volatility: Decimal
    sharpe_ratio: Ratio

    def weight(self, symbol: str) -> Decimal:
        return self.weights[symbol]

    @property
    def total_weight(self) -> Decimal:
        return sum(self.weights.values(), Decimal("0"))

    @property
    def has_short_positions(self) -> bool:
        return any(w < 0 for w in self.weights.values())


@dataclass(frozen=True)
class OptimizationResult:
    """
    Efficient frontier and its key portfolios.

    Attributes:
        minimum_variance: Lowest-volatility portfolio
        tangency: Highest-Sharpe portfolio (None when it does not exist)
        maximum_return: All weight in the highest-return asset
        frontier: Allocations from minimum_variance to maximum_return
        method: "analytical" when the minimum-variance and tangency portfolios
                came from the closed form, otherwise "iterative"
        warnings: Fallbacks and caveats
    """
    minimum_variance: PortfolioAllocation
    tangency: PortfolioAllocation | None
    maximum_return: PortfolioAllocation
    frontier: tuple[PortfolioAllocation, ...]
    method: str
    warnings: tuple[str, ...] = ()
