"""
Monte Carlo sequence-of-returns risk analysis.
Each trial samples its own annual return path (shuffling the withdrawal years
when analysing retirement), replays a simplified annual-step projection and
records the final balance. Trials are independent and can run across worker
processes.
"""
import logging
import math
import time
from concurrent.futures import ProcessPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from accounts import AccountBalances, allocate, apply_period, initial_balances
from deterministic import exact_annual_returns, retirement_withdrawal
from retirement import retirement_volatility, to_balances
from returns import AnnualUniformSampler, SeedLike, make_rng, shuffle_from, spawn_seeds
from simulation import (SimulationParams, calculate_percentiles,
                        contribution_for_year, validate_params)

logger = logging.getLogger(__name__)

ACCUMULATION = "accumulation"
RETIREMENT = "retirement"

# Synthetic band reported around an exact path when volatility is zero
DETERMINISTIC_BAND = 0.05
SEQUENTIAL_CHUNK_SIZE = 100


class AnalysisTimeoutError(RuntimeError):
    """Raised when the trial loop runs past its deadline"""


@dataclass(frozen=True)
class TrialPlan:
    """Everything a worker needs to replay trials"""
    phase: str
    years: int
    annual_return_pct: float
    volatility_pct: float
    starting_balances: AccountBalances
    withdrawal_offset: Optional[int] = None


@dataclass
class SequenceRiskResults:
    """Percentile summary of a batch of trials"""
    median: float
    p10: float
    p90: float
    success_rate: float
    worst_case: float
    best_case: float
    mean: float
    trials: int
    deterministic: bool
    final_balances: np.ndarray


def replay_annual_path(params: SimulationParams,
                       plan: TrialPlan,
                       annual_returns: Sequence[float]) -> Tuple[float, bool]:
    """
    Replay one trial with annual steps.

    Accumulation years add a year of contributions; retirement years from the
    withdrawal offset onward draw the (optionally inflation-escalated) annual
    withdrawal. Fees and dividend tax use the annual approximation of the
    monthly ledger.

    Returns:
        (final balance, depleted)
    """
    tax_rates = params.tax_rates
    fee_rate = (params.expense_ratio + params.advisory_fee) / 100
    balances = plan.starting_balances

    for year, annual_return in enumerate(annual_returns):
        if plan.withdrawal_offset is None:
            contribution = allocate(contribution_for_year(params, year) * 12, params.account_type,
                                    params.tax_deferred_allocation, params.tax_free_allocation)
            balances, _ = apply_period(balances, annual_return, fee_rate, tax_rates,
                                       contribution=contribution)
        elif year < plan.withdrawal_offset:
            balances, _ = apply_period(balances, annual_return, fee_rate, tax_rates)
        else:
            need = retirement_withdrawal(params, year - plan.withdrawal_offset)
            balances, flows = apply_period(balances, annual_return, fee_rate, tax_rates,
                                           withdrawal=need)
            if flows.shortfall > 0:
                return balances.total, True

    return balances.total, False


def run_trial_chunk(params: SimulationParams,
                    plan: TrialPlan,
                    seeds: Sequence[np.random.SeedSequence]) -> List[Tuple[float, bool]]:
    """Run a batch of trials, one independent generator per seed"""
    sampler = AnnualUniformSampler(plan.annual_return_pct, plan.volatility_pct)
    outcomes = []
    for seed in seeds:
        rng = make_rng(seed)
        annual_returns = sampler.sample_path(rng, plan.years)
        if plan.withdrawal_offset is not None:
            shuffle_from(annual_returns, plan.withdrawal_offset, rng)
        outcomes.append(replay_annual_path(params, plan, annual_returns))
    return outcomes


class SequenceRiskAnalyzer:
    """Percentile bands and success rate from many independent trials"""

    def __init__(self, params: SimulationParams):
        self.params = params
        validate_params(params)

    def build_plan(self, phase: str = ACCUMULATION,
                   starting_balances=None) -> TrialPlan:
        p = self.params
        if phase == ACCUMULATION:
            balances = initial_balances(p) if starting_balances is None else to_balances(p, starting_balances)
            return TrialPlan(
                phase=phase,
                years=p.investment_horizon,
                annual_return_pct=p.expected_annual_return,
                volatility_pct=p.return_volatility,
                starting_balances=balances,
            )
        if phase == RETIREMENT:
            if starting_balances is None:
                raise ValueError("Retirement analysis needs a starting balance")
            # Withdrawals may be deferred past the end of accumulation
            offset = p.withdrawal_offset
            return TrialPlan(
                phase=phase,
                years=offset + p.retirement_years,
                annual_return_pct=p.retirement_return,
                volatility_pct=retirement_volatility(p),
                starting_balances=to_balances(p, starting_balances),
                withdrawal_offset=offset,
            )
        raise ValueError(f"Unknown analysis phase: {phase}")

    def analyze(self, trials: Optional[int] = None,
                starting_balances=None,
                phase: str = ACCUMULATION,
                seed: SeedLike = None) -> SequenceRiskResults:
        """
        Run the trials and reduce them to percentiles.

        Args:
            trials: Number of trials (defaults to params.num_sims)
            starting_balances: Opening balances; required for the retirement phase
            phase: "accumulation" or "retirement"
            seed: Master seed (defaults to params.random_seed)

        Returns:
            SequenceRiskResults
        """
        plan = self.build_plan(phase, starting_balances)
        if plan.volatility_pct == 0:
            return self._analyze_deterministic(plan)

        trials = self.params.num_sims if trials is None else trials
        if trials < 1:
            raise ValueError("At least one trial is required")
        master_seed = self.params.random_seed if seed is None else seed
        seeds = spawn_seeds(master_seed, trials)

        started = time.monotonic()
        outcomes = self._run_trials(plan, seeds)
        logger.debug("%d %s trials finished in %.3fs", trials, phase, time.monotonic() - started)

        final_balances = np.array([final for final, _ in outcomes], dtype=float)
        depleted = np.array([flag for _, flag in outcomes], dtype=bool)
        bands = calculate_percentiles(final_balances)
        return SequenceRiskResults(
            median=bands['p50'],
            p10=bands['p10'],
            p90=bands['p90'],
            success_rate=float(np.mean(~depleted)),
            worst_case=float(np.min(final_balances)),
            best_case=float(np.max(final_balances)),
            mean=float(np.mean(final_balances)),
            trials=trials,
            deterministic=False,
            final_balances=np.sort(final_balances),
        )

    def _analyze_deterministic(self, plan: TrialPlan) -> SequenceRiskResults:
        """Single exact path with a synthetic +/-5% band for display"""
        final, depleted = replay_annual_path(
            self.params, plan, exact_annual_returns(plan.annual_return_pct, plan.years))
        logger.debug("Zero volatility; reporting exact path with a synthetic band")
        low = final * (1 - DETERMINISTIC_BAND)
        high = final * (1 + DETERMINISTIC_BAND)
        return SequenceRiskResults(
            median=final,
            p10=low,
            p90=high,
            success_rate=0.0 if depleted else 1.0,
            worst_case=low,
            best_case=high,
            mean=final,
            trials=1,
            deterministic=True,
            final_balances=np.array([final]),
        )

    def _run_trials(self, plan: TrialPlan,
                    seeds: List[np.random.SeedSequence]) -> List[Tuple[float, bool]]:
        p = self.params
        deadline = None if p.deadline_seconds is None else time.monotonic() + p.deadline_seconds

        if p.n_workers == 1:
            outcomes = []
            for start in range(0, len(seeds), SEQUENTIAL_CHUNK_SIZE):
                self._check_deadline(deadline)
                outcomes.extend(run_trial_chunk(p, plan, seeds[start:start + SEQUENTIAL_CHUNK_SIZE]))
            return outcomes

        chunk_size = max(1, math.ceil(len(seeds) / (p.n_workers * 4)))
        chunks = [seeds[i:i + chunk_size] for i in range(0, len(seeds), chunk_size)]
        logger.debug("Distributing %d trials over %d workers in %d chunks",
                     len(seeds), p.n_workers, len(chunks))

        executor = ProcessPoolExecutor(max_workers=p.n_workers)
        try:
            futures = [executor.submit(run_trial_chunk, p, plan, chunk) for chunk in chunks]
            outcomes = []
            # Collect in submission order so trial i keeps its position
            for future in futures:
                timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
                try:
                    outcomes.extend(future.result(timeout=timeout))
                except FuturesTimeoutError:
                    raise AnalysisTimeoutError(
                        f"Sequence risk analysis exceeded {p.deadline_seconds}s deadline") from None
            return outcomes
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _check_deadline(self, deadline: Optional[float]) -> None:
        if deadline is not None and time.monotonic() > deadline:
            raise AnalysisTimeoutError(
                f"Sequence risk analysis exceeded {self.params.deadline_seconds}s deadline")
