"""
Unit tests for the monthly accumulation engine.
"""
from dataclasses import replace

import pytest
import numpy as np

from returns import make_rng
from simulation import (AccumulationSimulator, SimulationParams, calculate_percentiles,
                        contribution_for_year, deflate)


def flat_params(**overrides):
    """Zero-cost parameters; tests switch individual costs back on"""
    base = dict(
        initial_investment=10_000,
        monthly_contribution=0,
        annual_contribution_increase=0,
        investment_horizon=1,
        expected_annual_return=10.0,
        return_volatility=0.0,
        inflation_rate=0.0,
        income_tax_rate=0.0,
        dividend_tax_rate=0.0,
        capital_gains_tax_rate=0.0,
        expense_ratio=0.0,
        advisory_fee=0.0,
        account_type="tax-free",
        random_seed=42,
    )
    base.update(overrides)
    return SimulationParams(**base)


class TestSimulationParams:
    """Test SimulationParams initialization"""

    def test_default_params_valid(self):
        """Test that default parameters are valid"""
        simulator = AccumulationSimulator(SimulationParams())
        assert simulator.params.initial_investment == 10_000
        assert simulator.params.investment_horizon == 30

    def test_withdrawal_start_defaults_to_horizon(self):
        params = SimulationParams(investment_horizon=25)
        assert params.withdrawal_start_year is None
        assert params.effective_withdrawal_start_year == 25
        assert params.withdrawal_offset == 0

    def test_withdrawal_start_follows_replaced_horizon(self):
        """Test an unset start year tracks the horizon after dataclasses.replace"""
        params = replace(SimulationParams(investment_horizon=30), investment_horizon=10)
        assert params.effective_withdrawal_start_year == 10
        assert params.withdrawal_offset == 0

    def test_withdrawal_start_follows_attribute_change(self):
        params = SimulationParams(investment_horizon=30)
        params.investment_horizon = 12
        assert params.withdrawal_offset == 0

    def test_explicit_withdrawal_start(self):
        params = SimulationParams(investment_horizon=30, withdrawal_start_year=35)
        assert params.withdrawal_offset == 5
        assert replace(params, investment_horizon=33).withdrawal_offset == 2

    def test_start_before_horizon_has_no_offset(self):
        params = SimulationParams(investment_horizon=30, withdrawal_start_year=20)
        assert params.withdrawal_offset == 0

    def test_rate_helpers(self):
        params = SimulationParams(expected_annual_return=12.0, expense_ratio=0.6, advisory_fee=0.6)
        assert abs(params.monthly_rate - 0.01) < 1e-12
        assert abs(params.monthly_fee_rate - 0.001) < 1e-12
        assert params.tax_rates.income == 25.0


class TestClosedFormScenarios:
    """Test the deterministic fixtures"""

    def test_single_year_no_contribution(self):
        """Test 10,000 at 10% for one year is exactly 11,000"""
        results = AccumulationSimulator(flat_params()).run_simulation()
        assert results.closed_form
        assert abs(results.final_balance - 11_000) / 11_000 < 1e-6
        assert results.total_contributions == 10_000

    def test_single_year_with_contributions(self):
        """Test 100/month at 12% contributes 11,200 and grows past it"""
        params = flat_params(monthly_contribution=100, expected_annual_return=12.0)
        results = AccumulationSimulator(params).run_simulation()
        assert abs(results.total_contributions - 11_200) < 1e-6
        assert results.final_balance > 11_200
        assert abs(results.final_balance - (11_200 + 1_272)) < 1e-6


class TestAccumulationSimulator:
    """Test the monthly stochastic path"""

    def test_zero_volatility_monthly_compounding(self):
        """Test a two-year zero-volatility run compounds monthly"""
        params = flat_params(initial_investment=1_000, investment_horizon=2, expected_annual_return=12.0)
        results = AccumulationSimulator(params).run_simulation()
        assert not results.closed_form
        assert abs(results.final_balance - 1_000 * 1.01 ** 24) < 1e-6

    def test_snapshot_length_includes_seed_row(self):
        params = SimulationParams(investment_horizon=10, random_seed=1)
        results = AccumulationSimulator(params).run_simulation()
        assert len(results.year_snapshots) == 11
        assert results.year_snapshots[0].year == 0
        assert results.year_snapshots[-1].year == 10
        assert results.year_snapshots[-1].ending_balance == results.final_balance

    def test_contribution_accounting(self):
        """Test total contributions equal initial + 12 * m * years"""
        params = SimulationParams(initial_investment=10_000, monthly_contribution=500,
                                  annual_contribution_increase=0, investment_horizon=10,
                                  random_seed=3)
        results = AccumulationSimulator(params).run_simulation()
        assert abs(results.total_contributions - (10_000 + 12 * 500 * 10)) < 1e-6

    def test_contribution_increase(self):
        params = SimulationParams(monthly_contribution=100, annual_contribution_increase=10)
        assert contribution_for_year(params, 0) == 100
        assert abs(contribution_for_year(params, 2) - 121) < 1e-9

    def test_inflation_round_trip(self):
        """Test deflated final value re-inflates to the final balance"""
        params = SimulationParams(inflation_rate=3.0, investment_horizon=20, random_seed=8)
        results = AccumulationSimulator(params).run_simulation()
        last = results.year_snapshots[-1]
        assert abs(last.inflation_adjusted_value * 1.03 ** 20 - results.final_balance) < 1e-6

    def test_seeded_runs_reproducible(self):
        params = SimulationParams(random_seed=123)
        a = AccumulationSimulator(params).run_simulation()
        b = AccumulationSimulator(params).run_simulation()
        assert a.final_balance == b.final_balance
        assert [s.ending_balance for s in a.year_snapshots] == [s.ending_balance for s in b.year_snapshots]

    def test_injected_generator(self):
        """Test an injected generator drives the path"""
        params = SimulationParams()
        a = AccumulationSimulator(params, make_rng(5)).run_simulation()
        b = AccumulationSimulator(params, make_rng(5)).run_simulation()
        c = AccumulationSimulator(params, make_rng(6)).run_simulation()
        assert a.final_balance == b.final_balance
        assert a.final_balance != c.final_balance


class TestTaxMonotonicity:
    """Test account type drives accumulation-phase taxes"""

    def run(self, account_type):
        params = SimulationParams(account_type=account_type, return_volatility=0.0,
                                  investment_horizon=10, random_seed=1)
        return AccumulationSimulator(params).run_simulation()

    def test_taxable_pays_more_than_tax_deferred(self):
        assert self.run("taxable").total_taxes > self.run("tax-deferred").total_taxes

    def test_tax_free_pays_nothing(self):
        assert self.run("tax-free").total_taxes == 0

    def test_mixed_pays_no_dividend_tax(self):
        """Test mixed mode holds no taxable balance"""
        results = self.run("mixed")
        assert results.total_taxes == 0
        assert results.final_balances.taxable == 0


class TestPercentiles:
    """Test index-based percentiles"""

    def test_index_rule(self):
        bands = calculate_percentiles(np.arange(1, 11, dtype=float))
        assert bands == {'p10': 2.0, 'p50': 6.0, 'p90': 10.0}

    def test_single_value(self):
        bands = calculate_percentiles(np.array([5.0]))
        assert bands['p10'] == bands['p50'] == bands['p90'] == 5.0

    def test_unsorted_input(self):
        bands = calculate_percentiles(np.array([9.0, 1.0, 5.0, 3.0, 7.0]))
        assert bands['p10'] <= bands['p50'] <= bands['p90']

    def test_empty(self):
        assert calculate_percentiles(np.array([])) == {'p10': 0.0, 'p50': 0.0, 'p90': 0.0}


def test_deflate():
    assert abs(deflate(110, 10, 1) - 100) < 1e-9
    assert deflate(100, 0, 30) == 100
