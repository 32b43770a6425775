"""
Retirement withdrawal simulation with depletion detection.
Draws monthly through the tax-efficient sequencer and measures how long the
portfolio lasts, up to a 100-year ceiling. Years are counted from the end of
accumulation; withdrawals may be deferred by params.withdrawal_offset years.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

import numpy as np

from accounts import AccountBalances, allocate, apply_month
from deterministic import (MAX_RETIREMENT_YEARS, DeterministicProjector,
                           is_closed_form_retirement, retirement_withdrawal)
from returns import MonthlyFatTailSampler, make_rng
from simulation import SimulationParams, YearSnapshot, deflate, validate_params
from tax import effective_tax_rate

logger = logging.getLogger(__name__)

# Retirement portfolios are assumed to run at 80% of the accumulation volatility
RETIREMENT_VOLATILITY_FACTOR = 0.8


@dataclass
class RetirementResults:
    """Results from one retirement path"""
    starting_balance: float
    total_withdrawals: float
    total_growth: float
    final_balance: float
    inflation_adjusted_final_balance: float
    total_taxes_paid: float
    years_of_income: float
    projected_longevity: float
    year_by_year_details: List[YearSnapshot]
    depleted: bool = False
    final_balances: AccountBalances = field(default_factory=AccountBalances)
    closed_form: bool = False
    effective_withdrawal_tax_rate: float = 0.0


def years_of_income(params: SimulationParams, longevity: float) -> float:
    """Withdrawal years funded, capped at the requested retirement length"""
    return float(max(0, min(longevity - params.withdrawal_offset, params.retirement_years)))


def to_balances(params: SimulationParams,
                starting_balance: Union[float, AccountBalances]) -> AccountBalances:
    """Accept either split balances or a lump sum split by account type"""
    if isinstance(starting_balance, AccountBalances):
        return starting_balance
    return allocate(float(starting_balance), params.account_type,
                    params.tax_deferred_allocation, params.tax_free_allocation)


def retirement_volatility(params: SimulationParams) -> float:
    return params.return_volatility * RETIREMENT_VOLATILITY_FACTOR


class RetirementSimulator:
    """Month-by-month withdrawal simulation on one sampled return path"""

    def __init__(self, params: SimulationParams, rng: Optional[np.random.Generator] = None):
        self.params = params
        validate_params(params)
        self.rng = rng if rng is not None else make_rng(params.random_seed)
        self.sampler = MonthlyFatTailSampler(params.retirement_return, retirement_volatility(params))

    def run_simulation(self, starting_balance: Union[float, AccountBalances]) -> RetirementResults:
        if is_closed_form_retirement(self.params):
            logger.debug("Zero volatility and zero return; longevity by simple division")
            return DeterministicProjector(self.params).run_retirement(starting_balance)
        return self._run_stochastic(to_balances(self.params, starting_balance))

    def _run_stochastic(self, balances: AccountBalances) -> RetirementResults:
        p = self.params
        tax_rates = p.tax_rates
        fee_rate = p.monthly_fee_rate
        offset = p.withdrawal_offset
        plan_years = offset + p.retirement_years
        start_total = balances.total

        rows: List[YearSnapshot] = []
        reported_balances = balances
        total_withdrawals = 0.0
        total_growth = 0.0
        total_taxes = 0.0
        total_withdrawal_taxes = 0.0
        longevity = None

        for year in range(MAX_RETIREMENT_YEARS):
            year_start = balances.total
            if year_start <= 0:
                longevity = year
                break

            # Withdrawals wait out the deferral years; escalation counts from the first one
            monthly_need = retirement_withdrawal(p, year - offset) / 12 if year >= offset else 0.0
            withdrawals = earnings = fees = dividend_taxes = withdrawal_taxes = 0.0
            ran_out = False

            for _month in range(12):
                # Year 0 is the moment retirement begins; no time has elapsed for growth
                monthly_return = 0.0 if year == 0 else self.sampler.sample(self.rng)
                balances, flows = apply_month(balances, monthly_return, fee_rate, tax_rates,
                                              withdrawal=monthly_need)
                withdrawals += flows.actual_withdrawal
                earnings += flows.earnings
                fees += flows.fees_paid
                dividend_taxes += flows.taxes_paid
                withdrawal_taxes += flows.withdrawal_taxes
                if flows.shortfall > 0:
                    ran_out = True
                    break

            if year < plan_years:
                rows.append(YearSnapshot(
                    year=year,
                    starting_balance=year_start,
                    contributions=0.0,
                    withdrawals=withdrawals,
                    earnings=earnings,
                    fees=fees,
                    taxes=dividend_taxes + withdrawal_taxes,
                    dividend_taxes=dividend_taxes,
                    withdrawal_taxes=withdrawal_taxes,
                    ending_balance=balances.total,
                    inflation_adjusted_value=deflate(balances.total, p.inflation_rate, year),
                    remaining_years=max(0, plan_years - year - 1),
                    tax_deferred_balance=balances.tax_deferred,
                    tax_free_balance=balances.tax_free,
                    taxable_balance=balances.taxable,
                ))
                reported_balances = balances
                total_withdrawals += withdrawals
                total_growth += earnings
                total_taxes += dividend_taxes + withdrawal_taxes
                total_withdrawal_taxes += withdrawal_taxes

            if ran_out:
                longevity = year
                break

        if longevity is None:
            longevity = MAX_RETIREMENT_YEARS
            logger.info("Portfolio outlasted the %d-year simulation ceiling", MAX_RETIREMENT_YEARS)

        final_balance = reported_balances.total
        last_year = rows[-1].year if rows else 0
        logger.debug("Retirement path: longevity %d years, final balance %.2f", longevity, final_balance)
        return RetirementResults(
            starting_balance=start_total,
            total_withdrawals=total_withdrawals,
            total_growth=total_growth,
            final_balance=final_balance,
            inflation_adjusted_final_balance=deflate(final_balance, p.inflation_rate, last_year),
            total_taxes_paid=total_taxes,
            years_of_income=years_of_income(p, longevity),
            projected_longevity=float(longevity),
            year_by_year_details=rows,
            depleted=longevity < plan_years,
            final_balances=reported_balances,
            effective_withdrawal_tax_rate=effective_tax_rate(total_withdrawals, total_withdrawal_taxes),
        )
