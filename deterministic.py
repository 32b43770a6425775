"""
Closed-form projections used when inputs carry no randomness.
Guard predicates pick these paths over the stochastic simulators so that
zero-volatility fixtures are exactly reproducible.
"""
import logging
from typing import Union

from accounts import AccountBalances, allocate, apply_period, initial_balances
from simulation import (AccumulationResults, SimulationParams, YearSnapshot,
                        contribution_for_year, deflate, seed_snapshot)
from tax import effective_tax_rate

logger = logging.getLogger(__name__)

MAX_RETIREMENT_YEARS = 100


def is_closed_form_accumulation(params: SimulationParams) -> bool:
    """True when the accumulation path has no volatility, inflation, fees or taxes over at most one year"""
    return (params.return_volatility == 0
            and params.investment_horizon <= 1
            and params.inflation_rate == 0
            and params.expense_ratio == 0
            and params.advisory_fee == 0
            and params.tax_rates.is_zero())


def is_closed_form_retirement(params: SimulationParams) -> bool:
    """True when retirement balances neither move with the market nor grow"""
    return params.return_volatility == 0 and params.retirement_return == 0


def closed_form_longevity(balance: float, annual_withdrawal: float) -> float:
    """Years a flat withdrawal lasts with no growth, capped at the simulation ceiling"""
    if annual_withdrawal <= 0:
        return float(MAX_RETIREMENT_YEARS)
    return min(float(MAX_RETIREMENT_YEARS), max(0.0, balance) / annual_withdrawal)


class DeterministicProjector:
    """Exact projections for the deterministic guard cases"""

    def __init__(self, params: SimulationParams):
        self.params = params

    def run_accumulation(self) -> AccumulationResults:
        """
        Annual compounding P(1+r)^t plus each year's contributions.

        Contributions arrive through the year, so on average they earn half a
        year of growth: annual_contribution * (1 + r/2).
        """
        p = self.params
        r = p.expected_annual_return / 100
        balances = initial_balances(p)
        snapshots = [seed_snapshot(balances)]
        total_contributions = p.initial_investment
        total_earnings = 0.0

        for year in range(p.investment_horizon):
            year_start = balances.total
            annual_contribution = contribution_for_year(p, year) * 12
            contribution = allocate(annual_contribution, p.account_type,
                                    p.tax_deferred_allocation, p.tax_free_allocation)
            balances = balances.scaled(1 + r) + contribution.scaled(1 + r / 2)
            ending = balances.total
            earnings = ending - year_start - annual_contribution

            snapshots.append(YearSnapshot(
                year=year + 1,
                starting_balance=year_start,
                contributions=annual_contribution,
                earnings=earnings,
                fees=0.0,
                taxes=0.0,
                ending_balance=ending,
                inflation_adjusted_value=deflate(ending, p.inflation_rate, year + 1),
                tax_deferred_balance=balances.tax_deferred,
                tax_free_balance=balances.tax_free,
                taxable_balance=balances.taxable,
            ))
            total_contributions += annual_contribution
            total_earnings += earnings

        return AccumulationResults(
            year_snapshots=snapshots,
            final_balances=balances,
            total_contributions=total_contributions,
            total_earnings=total_earnings,
            total_fees=0.0,
            total_taxes=0.0,
            closed_form=True,
        )

    def run_retirement(self, starting_balance: Union[float, AccountBalances]):
        """
        Longevity by simple division of balance over annual withdrawal.

        Deferral years come first and only pay fees. The year rows still draw
        through the withdrawal sequencer so taxes and fees are reported, but no
        growth is applied.
        """
        from retirement import RetirementResults, to_balances, years_of_income

        p = self.params
        offset = p.withdrawal_offset
        plan_years = offset + p.retirement_years
        balances = to_balances(p, starting_balance)
        start_total = balances.total
        longevity = min(float(MAX_RETIREMENT_YEARS),
                        offset + closed_form_longevity(start_total, p.annual_withdrawal))
        if longevity >= MAX_RETIREMENT_YEARS:
            logger.info("Withdrawal never exhausts the portfolio; longevity capped at %d years",
                        MAX_RETIREMENT_YEARS)

        annual_fee_rate = (p.expense_ratio + p.advisory_fee) / 100
        tax_rates = p.tax_rates
        rows = []
        total_withdrawals = 0.0
        total_taxes = 0.0
        total_withdrawal_taxes = 0.0
        depleted = False

        for year in range(plan_years):
            if balances.total <= 0:
                depleted = True
                break
            need = retirement_withdrawal(p, year - offset) if year >= offset else 0.0
            year_start = balances.total
            balances, flows = apply_period(balances, 0.0, annual_fee_rate, tax_rates, withdrawal=need)
            total_withdrawals += flows.actual_withdrawal
            total_taxes += flows.withdrawal_taxes + flows.taxes_paid
            total_withdrawal_taxes += flows.withdrawal_taxes
            rows.append(YearSnapshot(
                year=year,
                starting_balance=year_start,
                contributions=0.0,
                withdrawals=flows.actual_withdrawal,
                earnings=0.0,
                fees=flows.fees_paid,
                taxes=flows.withdrawal_taxes + flows.taxes_paid,
                dividend_taxes=flows.taxes_paid,
                withdrawal_taxes=flows.withdrawal_taxes,
                ending_balance=balances.total,
                inflation_adjusted_value=deflate(balances.total, p.inflation_rate, year),
                remaining_years=max(0, plan_years - year - 1),
                tax_deferred_balance=balances.tax_deferred,
                tax_free_balance=balances.tax_free,
                taxable_balance=balances.taxable,
            ))
            if flows.shortfall > 0:
                depleted = True
                break

        last_year = rows[-1].year if rows else 0
        return RetirementResults(
            starting_balance=start_total,
            total_withdrawals=total_withdrawals,
            total_growth=0.0,
            final_balance=balances.total,
            inflation_adjusted_final_balance=deflate(balances.total, p.inflation_rate, last_year),
            total_taxes_paid=total_taxes,
            years_of_income=years_of_income(p, longevity),
            projected_longevity=longevity,
            year_by_year_details=rows,
            depleted=depleted or longevity < plan_years,
            final_balances=balances,
            closed_form=True,
            effective_withdrawal_tax_rate=effective_tax_rate(total_withdrawals, total_withdrawal_taxes),
        )


def retirement_withdrawal(params: SimulationParams, year: int) -> float:
    """Annual withdrawal for a (0-based) retirement year"""
    if params.withdrawal_adjust_for_inflation:
        return params.annual_withdrawal * (1 + params.inflation_rate / 100) ** year
    return params.annual_withdrawal


def exact_annual_returns(expected_return_pct: float, years: int) -> list:
    """Constant return path used when volatility is zero"""
    return [expected_return_pct / 100] * max(0, years)
