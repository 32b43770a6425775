"""
Monthly compounding accumulation engine.
Input parameters, validation, year snapshots and the headline-path simulator.
Pure functions and small classes, decoupled from any UI.
"""
import logging
import math
from dataclasses import dataclass, fields
from typing import List, Optional

import numpy as np

from accounts import (ACCOUNT_TYPES, MIXED, AccountBalances, apply_month,
                      initial_balances, monthly_fee_rate)
from returns import MonthlyFatTailSampler, make_rng
from tax import TaxRates

logger = logging.getLogger(__name__)

DEFAULT_NUM_SIMS = 1_000
MAX_NUM_SIMS = 5_000


class ParameterValidationError(ValueError):
    """Raised when inputs cannot produce a meaningful projection"""


@dataclass
class SimulationParams:
    """Parameters for one projection run (percentages are plain numbers: 7 means 7%)"""
    # Principal
    initial_investment: float = 10_000
    monthly_contribution: float = 500
    annual_contribution_increase: float = 2.0

    # Horizon
    investment_horizon: int = 30

    # Market assumptions
    expected_annual_return: float = 7.0
    return_volatility: float = 15.0
    inflation_rate: float = 2.0

    # Taxes
    income_tax_rate: float = 25.0
    dividend_tax_rate: float = 15.0
    capital_gains_tax_rate: float = 15.0

    # Fees
    expense_ratio: float = 0.1
    advisory_fee: float = 0.0

    # Account structure
    account_type: str = "tax-deferred"
    tax_deferred_allocation: float = 70.0
    tax_free_allocation: float = 30.0

    # Asset allocation (input only)
    stocks_allocation: float = 80.0
    bonds_allocation: float = 20.0
    cash_allocation: float = 0.0

    # Retirement phase
    retirement_enabled: bool = False
    annual_withdrawal: float = 40_000
    withdrawal_adjust_for_inflation: bool = True
    retirement_years: int = 30
    retirement_return: float = 5.0
    withdrawal_start_year: Optional[int] = None

    # Simulation control
    num_sims: int = DEFAULT_NUM_SIMS
    random_seed: Optional[int] = None
    n_workers: int = 1
    deadline_seconds: Optional[float] = None

    @property
    def effective_withdrawal_start_year(self) -> int:
        """Year withdrawals begin, counted from today; unset means at the end of the horizon"""
        if self.withdrawal_start_year is None:
            return int(self.investment_horizon)
        return int(self.withdrawal_start_year)

    @property
    def withdrawal_offset(self) -> int:
        """Growth-only years between retirement and the first withdrawal"""
        return max(0, self.effective_withdrawal_start_year - int(self.investment_horizon))

    @property
    def tax_rates(self) -> TaxRates:
        return TaxRates(
            income=self.income_tax_rate,
            dividends=self.dividend_tax_rate,
            capital_gains=self.capital_gains_tax_rate,
        )

    @property
    def monthly_fee_rate(self) -> float:
        return monthly_fee_rate(self.expense_ratio, self.advisory_fee)

    @property
    def monthly_rate(self) -> float:
        return self.expected_annual_return / 12 / 100


def validate_params(params: SimulationParams) -> None:
    """
    Reject inputs that would produce nonsensical output.

    Raises:
        ParameterValidationError: on the first invalid field
    """
    for f in fields(params):
        value = getattr(params, f.name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if not math.isfinite(value):
                raise ParameterValidationError(f"{f.name} must be finite, got {value}")

    if params.initial_investment < 0:
        raise ParameterValidationError("Initial investment cannot be negative")
    if params.monthly_contribution < 0:
        raise ParameterValidationError("Monthly contribution cannot be negative")
    if int(params.investment_horizon) != params.investment_horizon or params.investment_horizon < 1:
        raise ParameterValidationError("Investment horizon must be a whole number of years >= 1")

    for name in ("annual_contribution_increase", "expected_annual_return",
                 "inflation_rate", "retirement_return"):
        if getattr(params, name) <= -100:
            raise ParameterValidationError(f"{name} must be greater than -100%")

    if params.return_volatility < 0:
        raise ParameterValidationError("Return volatility cannot be negative")
    if params.expense_ratio < 0 or params.advisory_fee < 0:
        raise ParameterValidationError("Fees cannot be negative")

    for name in ("income_tax_rate", "dividend_tax_rate", "capital_gains_tax_rate"):
        if not 0 <= getattr(params, name) <= 100:
            raise ParameterValidationError(f"{name} must be between 0 and 100")

    if params.account_type not in ACCOUNT_TYPES:
        raise ParameterValidationError(
            f"Account type must be one of {', '.join(ACCOUNT_TYPES)}, got {params.account_type!r}")
    if params.account_type == MIXED:
        split = [params.tax_deferred_allocation, params.tax_free_allocation]
        if min(split) < 0 or abs(sum(split) - 100) > 1e-6:
            raise ParameterValidationError(
                f"Mixed account allocation must sum to 100, got {sum(split):.2f}")

    weights = [params.stocks_allocation, params.bonds_allocation, params.cash_allocation]
    if min(weights) < 0 or abs(sum(weights) - 100) > 1e-6:
        raise ParameterValidationError(f"Allocation weights must sum to 100, got {sum(weights):.2f}")

    if params.annual_withdrawal < 0:
        raise ParameterValidationError("Annual withdrawal cannot be negative")
    if params.retirement_enabled:
        if int(params.retirement_years) != params.retirement_years or params.retirement_years < 1:
            raise ParameterValidationError("Retirement years must be a whole number >= 1")
    if params.withdrawal_start_year is not None and params.withdrawal_start_year < 0:
        raise ParameterValidationError("Withdrawal start year cannot be negative")

    if not 1 <= params.num_sims <= MAX_NUM_SIMS:
        raise ParameterValidationError(f"Number of simulations must be between 1 and {MAX_NUM_SIMS:,}")
    if params.n_workers < 1:
        raise ParameterValidationError("Number of workers must be at least 1")
    if params.deadline_seconds is not None and params.deadline_seconds <= 0:
        raise ParameterValidationError("Deadline must be positive")


@dataclass(frozen=True)
class YearSnapshot:
    """One row of the year-by-year table"""
    year: int
    starting_balance: float
    contributions: float
    earnings: float
    fees: float
    taxes: float
    ending_balance: float
    inflation_adjusted_value: float
    withdrawals: float = 0.0
    dividend_taxes: float = 0.0
    withdrawal_taxes: float = 0.0
    remaining_years: Optional[int] = None
    tax_deferred_balance: float = 0.0
    tax_free_balance: float = 0.0
    taxable_balance: float = 0.0


@dataclass
class AccumulationResults:
    """Results from the headline accumulation path"""
    year_snapshots: List[YearSnapshot]
    final_balances: AccountBalances
    total_contributions: float
    total_earnings: float
    total_fees: float
    total_taxes: float
    closed_form: bool = False

    @property
    def final_balance(self) -> float:
        return self.final_balances.total

    @property
    def total_growth(self) -> float:
        return self.final_balance - self.total_contributions


def seed_snapshot(balances: AccountBalances) -> YearSnapshot:
    """Year-0 row holding the opening balances"""
    return YearSnapshot(
        year=0,
        starting_balance=balances.total,
        contributions=0.0,
        earnings=0.0,
        fees=0.0,
        taxes=0.0,
        ending_balance=balances.total,
        inflation_adjusted_value=balances.total,
        tax_deferred_balance=balances.tax_deferred,
        tax_free_balance=balances.tax_free,
        taxable_balance=balances.taxable,
    )


def contribution_for_year(params: SimulationParams, year: int) -> float:
    """Monthly contribution in force during a given (0-based) year"""
    return params.monthly_contribution * (1 + params.annual_contribution_increase / 100) ** year


def deflate(value: float, inflation_rate: float, years: int) -> float:
    """Express a future value in today's money"""
    return value / (1 + inflation_rate / 100) ** years


class AccumulationSimulator:
    """Month-by-month accumulation on one sampled return path"""

    def __init__(self, params: SimulationParams, rng: Optional[np.random.Generator] = None):
        self.params = params
        validate_params(params)
        self.rng = rng if rng is not None else make_rng(params.random_seed)
        self.sampler = MonthlyFatTailSampler(params.expected_annual_return, params.return_volatility)

    def run_simulation(self) -> AccumulationResults:
        """Run the headline path, short-circuiting to closed form when inputs allow"""
        from deterministic import DeterministicProjector, is_closed_form_accumulation

        if is_closed_form_accumulation(self.params):
            logger.debug("Accumulation inputs are deterministic; using closed-form compounding")
            return DeterministicProjector(self.params).run_accumulation()
        return self._run_stochastic()

    def _run_stochastic(self) -> AccumulationResults:
        p = self.params
        tax_rates = p.tax_rates
        fee_rate = p.monthly_fee_rate

        balances = initial_balances(p)
        snapshots = [seed_snapshot(balances)]
        total_contributions = p.initial_investment
        total_earnings = 0.0
        total_fees = 0.0
        total_taxes = 0.0

        for year in range(p.investment_horizon):
            year_start = balances.total
            monthly_contribution = contribution_for_year(p, year)
            year_contributions = 0.0
            year_earnings = 0.0
            year_fees = 0.0
            year_taxes = 0.0

            for _month in range(12):
                balances, month = apply_month(
                    balances,
                    self.sampler.sample(self.rng),
                    fee_rate,
                    tax_rates,
                    contribution=monthly_contribution,
                    account_type=p.account_type,
                    tax_deferred_pct=p.tax_deferred_allocation,
                    tax_free_pct=p.tax_free_allocation,
                )
                year_contributions += month.contribution
                year_earnings += month.earnings
                year_fees += month.fees_paid
                year_taxes += month.taxes_paid

            ending = balances.total
            snapshots.append(YearSnapshot(
                year=year + 1,
                starting_balance=year_start,
                contributions=year_contributions,
                earnings=year_earnings,
                fees=year_fees,
                taxes=year_taxes,
                dividend_taxes=year_taxes,
                ending_balance=ending,
                inflation_adjusted_value=deflate(ending, p.inflation_rate, year + 1),
                tax_deferred_balance=balances.tax_deferred,
                tax_free_balance=balances.tax_free,
                taxable_balance=balances.taxable,
            ))
            total_contributions += year_contributions
            total_earnings += year_earnings
            total_fees += year_fees
            total_taxes += year_taxes

        logger.debug("Accumulation path finished: %d years, final balance %.2f",
                     p.investment_horizon, balances.total)
        return AccumulationResults(
            year_snapshots=snapshots,
            final_balances=balances,
            total_contributions=total_contributions,
            total_earnings=total_earnings,
            total_fees=total_fees,
            total_taxes=total_taxes,
        )


def calculate_percentiles(final_balances: np.ndarray) -> dict:
    """Index-based 10th/50th/90th percentiles of a set of final balances"""
    ordered = np.sort(np.asarray(final_balances, dtype=float))
    n = len(ordered)
    if n == 0:
        return {'p10': 0.0, 'p50': 0.0, 'p90': 0.0}

    def at(pct: float) -> float:
        return float(ordered[min(n - 1, int(math.floor(n * pct)))])

    return {'p10': at(0.10), 'p50': at(0.50), 'p90': at(0.90)}
