"""
Engine entry points.
Compose the accumulation path, the sequence-risk bands and the optional
retirement phase into the results structures consumed by the UI layer.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

import numpy as np

from accounts import AccountBalances
from retirement import RetirementResults, RetirementSimulator
from returns import make_rng
from sequence_risk import ACCUMULATION, RETIREMENT, SequenceRiskAnalyzer
from simulation import (AccumulationSimulator, SimulationParams, YearSnapshot,
                        deflate, validate_params)

logger = logging.getLogger(__name__)


@dataclass
class Summary:
    final_balance: float
    total_contributions: float
    total_growth: float
    inflation_adjusted_value: float
    total_fees: float
    total_taxes_paid: float
    total_withdrawals: float = 0.0


@dataclass
class ProbabilityMetrics:
    median: float
    upper_bound: float
    lower_bound: float
    success_rate: float
    success_probability: float
    worst_case_balance: float


@dataclass
class RetirementProbabilityMetrics:
    success_rate: float
    median_ending_balance: float
    worst_case_balance: float
    best_case_balance: float


@dataclass
class RetirementPhaseResults:
    """Retirement-phase summary, risk metrics and year rows"""
    summary: RetirementResults
    probability_metrics: RetirementProbabilityMetrics
    year_by_year_details: List[YearSnapshot]


@dataclass
class CalculatorResults:
    """Composite results for one calculator run"""
    summary: Summary
    probability_metrics: ProbabilityMetrics
    year_by_year_details: List[YearSnapshot]
    retirement_phase_results: Optional[RetirementPhaseResults] = None


def _stream_seeds(params: SimulationParams) -> List[np.random.SeedSequence]:
    """Independent seeds for the headline paths and the two trial batches"""
    return np.random.SeedSequence(params.random_seed).spawn(4)


def calculate_retirement_phase(params: SimulationParams,
                               starting_balance: Union[float, AccountBalances],
                               seeds: Optional[List[np.random.SeedSequence]] = None) -> RetirementPhaseResults:
    """
    Run the retirement path once and the retirement risk trials.

    Args:
        params: Simulation parameters
        starting_balance: Balance at retirement, lump sum or split by account
        seeds: Optional [headline, trials] seed pair

    Returns:
        RetirementPhaseResults
    """
    validate_params(params)
    if seeds is None:
        seeds = _stream_seeds(params)[2:]
    headline_seed, trials_seed = seeds[0], seeds[1]

    retirement = RetirementSimulator(params, make_rng(headline_seed)).run_simulation(starting_balance)
    risk = SequenceRiskAnalyzer(params).analyze(
        starting_balances=starting_balance, phase=RETIREMENT, seed=trials_seed)

    logger.info("Retirement phase: longevity %.1f years, success rate %.1f%%",
                retirement.projected_longevity, risk.success_rate * 100)
    return RetirementPhaseResults(
        summary=retirement,
        probability_metrics=RetirementProbabilityMetrics(
            success_rate=risk.success_rate,
            median_ending_balance=risk.median,
            worst_case_balance=risk.p10,
            best_case_balance=risk.p90,
        ),
        year_by_year_details=retirement.year_by_year_details,
    )


def calculate_monthly_compound_interest(params: SimulationParams) -> CalculatorResults:
    """
    Headline accumulation path, risk bands and (if enabled) the retirement phase.

    Args:
        params: Simulation parameters

    Returns:
        CalculatorResults
    """
    validate_params(params)
    seeds = _stream_seeds(params)

    accumulation = AccumulationSimulator(params, make_rng(seeds[0])).run_simulation()
    risk = SequenceRiskAnalyzer(params).analyze(phase=ACCUMULATION, seed=seeds[1])

    final_balance = accumulation.final_balance
    success_probability = float(np.mean(risk.final_balances >= final_balance))

    retirement_results = None
    total_withdrawals = 0.0
    total_taxes = accumulation.total_taxes
    if params.retirement_enabled:
        retirement_results = calculate_retirement_phase(
            params, accumulation.final_balances, seeds=seeds[2:])
        total_withdrawals = retirement_results.summary.total_withdrawals
        total_taxes += retirement_results.summary.total_taxes_paid

    logger.info("Projection complete: final balance %.2f, median %.2f over %d trials",
                final_balance, risk.median, risk.trials)
    return CalculatorResults(
        summary=Summary(
            final_balance=final_balance,
            total_contributions=accumulation.total_contributions,
            total_growth=accumulation.total_growth,
            inflation_adjusted_value=deflate(final_balance, params.inflation_rate,
                                             params.investment_horizon),
            total_fees=accumulation.total_fees,
            total_taxes_paid=total_taxes,
            total_withdrawals=total_withdrawals,
        ),
        probability_metrics=ProbabilityMetrics(
            median=risk.median,
            upper_bound=risk.p90,
            lower_bound=risk.p10,
            success_rate=risk.success_rate,
            success_probability=success_probability,
            worst_case_balance=risk.worst_case,
        ),
        year_by_year_details=accumulation.year_snapshots,
        retirement_phase_results=retirement_results,
    )
