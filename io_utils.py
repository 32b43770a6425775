"""
IO utilities for saving/loading parameters and exporting projection results.
Handles JSON serialization of parameters and CSV exports of results.
"""
import json
import math
from dataclasses import asdict, fields
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from engine import CalculatorResults
from simulation import SimulationParams, YearSnapshot, validate_params

# Nested camelCase calculator layout -> flat SimulationParams fields
NESTED_KEY_MAP = {
    'taxRate': {
        'income': 'income_tax_rate',
        'dividends': 'dividend_tax_rate',
        'capitalGains': 'capital_gains_tax_rate',
    },
    'fees': {
        'expenseRatio': 'expense_ratio',
        'advisoryFee': 'advisory_fee',
    },
    'accountAllocation': {
        'taxDeferred': 'tax_deferred_allocation',
        'taxFree': 'tax_free_allocation',
    },
    'assetAllocation': {
        'stocks': 'stocks_allocation',
        'bonds': 'bonds_allocation',
        'cash': 'cash_allocation',
    },
    'retirementPhase': {
        'enabled': 'retirement_enabled',
        'annualWithdrawal': 'annual_withdrawal',
        'withdrawalAdjustForInflation': 'withdrawal_adjust_for_inflation',
        'retirementYears': 'retirement_years',
        'retirementReturn': 'retirement_return',
        'withdrawalStartYear': 'withdrawal_start_year',
    },
}

FLAT_KEY_MAP = {
    'initialInvestment': 'initial_investment',
    'monthlyContribution': 'monthly_contribution',
    'annualContributionIncrease': 'annual_contribution_increase',
    'investmentHorizon': 'investment_horizon',
    'expectedAnnualReturn': 'expected_annual_return',
    'returnVolatility': 'return_volatility',
    'inflationRate': 'inflation_rate',
    'accountType': 'account_type',
}


def params_to_dict(params: SimulationParams) -> Dict[str, Any]:
    """
    Convert SimulationParams to dictionary for JSON serialization.

    Args:
        params: SimulationParams object

    Returns:
        Dictionary representation
    """
    return asdict(params)


def _flatten_calculator_layout(param_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Map the nested camelCase calculator inputs onto flat field names"""
    flat = {}
    for key, value in param_dict.items():
        if key in NESTED_KEY_MAP and isinstance(value, dict):
            for inner_key, inner_value in value.items():
                target = NESTED_KEY_MAP[key].get(inner_key)
                if target is not None:
                    flat[target] = inner_value
        else:
            flat[FLAT_KEY_MAP.get(key, key)] = value
    return flat


def dict_to_params(param_dict: Dict[str, Any]) -> SimulationParams:
    """
    Convert dictionary to SimulationParams object.

    Accepts either the flat field layout written by save_parameters_json or
    the nested camelCase calculator layout. Unknown keys (UI-only state) are
    dropped.

    Args:
        param_dict: Dictionary with parameter values

    Returns:
        SimulationParams object
    """
    flat = _flatten_calculator_layout(param_dict)
    known = {f.name for f in fields(SimulationParams)}
    return SimulationParams(**{k: v for k, v in flat.items() if k in known})


def save_parameters_json(params: SimulationParams, filepath: str) -> None:
    """
    Save simulation parameters to JSON file.

    Args:
        params: SimulationParams object to save
        filepath: Path to save JSON file
    """
    with open(filepath, 'w') as f:
        json.dump(params_to_dict(params), f, indent=2)


def load_parameters_json(filepath: str) -> SimulationParams:
    """
    Load simulation parameters from JSON file.

    Args:
        filepath: Path to JSON file

    Returns:
        SimulationParams object
    """
    with open(filepath, 'r') as f:
        param_dict = json.load(f)

    return dict_to_params(param_dict)


def create_parameters_download_json(params: SimulationParams) -> str:
    """JSON string for downloading parameters"""
    return json.dumps(params_to_dict(params), indent=2)


def parse_parameters_upload_json(json_string: str) -> SimulationParams:
    """Parse uploaded JSON string to SimulationParams"""
    return dict_to_params(json.loads(json_string))


def validate_parameters_json(json_string: str) -> tuple[bool, str]:
    """
    Validate uploaded parameters JSON.

    Args:
        json_string: JSON string to validate

    Returns:
        (is_valid, error_message)
    """
    try:
        param_dict = json.loads(json_string)
    except json.JSONDecodeError as e:
        return False, f"Invalid JSON: {str(e)}"

    if not isinstance(param_dict, dict):
        return False, "Parameters must be a JSON object"

    try:
        params = dict_to_params(param_dict)
        validate_params(params)
    except (TypeError, ValueError) as e:
        return False, f"Parameter validation error: {str(e)}"

    return True, ""


def year_by_year_dataframe(details: List[YearSnapshot]) -> pd.DataFrame:
    """Year-by-year rows as a DataFrame, one column per snapshot field"""
    columns = [f.name for f in fields(YearSnapshot)]
    return pd.DataFrame([asdict(row) for row in details], columns=columns)


def export_year_by_year_csv(details: List[YearSnapshot],
                            currency_format: str = "nominal") -> str:
    """
    Export year-by-year details table to CSV string.

    Args:
        details: Year snapshots from a projection or retirement run
        currency_format: "real" or "nominal" for column naming

    Returns:
        CSV string
    """
    df = year_by_year_dataframe(details)

    currency_columns = [
        'starting_balance', 'contributions', 'withdrawals', 'earnings',
        'fees', 'taxes', 'dividend_taxes', 'withdrawal_taxes', 'ending_balance',
        'tax_deferred_balance', 'tax_free_balance', 'taxable_balance',
    ]
    df = df.rename(columns={col: f'{col}_{currency_format}' for col in currency_columns})

    return df.to_csv(index=False)


def export_final_balances_csv(final_balances: np.ndarray) -> str:
    """
    Export trial final balances to CSV string.

    Args:
        final_balances: Array of final balances, one per trial

    Returns:
        CSV string
    """
    df = pd.DataFrame({
        'trial': range(1, len(final_balances) + 1),
        'final_balance': final_balances,
    })

    return df.to_csv(index=False)


def create_summary_report(params: SimulationParams,
                          results: CalculatorResults) -> Dict[str, Any]:
    """
    Create summary report of a projection.

    Args:
        params: Simulation parameters
        results: Calculator results

    Returns:
        Dictionary with summary information
    """
    summary = results.summary
    metrics = results.probability_metrics
    report = {
        'simulation_info': {
            'num_simulations': params.num_sims,
            'investment_horizon': params.investment_horizon,
            'initial_investment': params.initial_investment,
            'account_type': params.account_type,
            'random_seed': params.random_seed,
        },
        'summary': asdict(summary),
        'probability_metrics': asdict(metrics),
        'allocation': {
            'stocks': params.stocks_allocation,
            'bonds': params.bonds_allocation,
            'cash': params.cash_allocation,
        },
    }

    retirement = results.retirement_phase_results
    if retirement is not None:
        report['retirement'] = {
            'starting_balance': retirement.summary.starting_balance,
            'total_withdrawals': retirement.summary.total_withdrawals,
            'final_balance': retirement.summary.final_balance,
            'total_taxes_paid': retirement.summary.total_taxes_paid,
            'years_of_income': retirement.summary.years_of_income,
            'projected_longevity': retirement.summary.projected_longevity,
            'depleted': retirement.summary.depleted,
            'effective_withdrawal_tax_rate': retirement.summary.effective_withdrawal_tax_rate,
            'probability_metrics': asdict(retirement.probability_metrics),
        }

    return report


def export_summary_report_json(report: Dict[str, Any]) -> str:
    """Export summary report as JSON string"""
    return json.dumps(report, indent=2, default=str)


def format_currency(value: float) -> str:
    """
    Format a value as whole dollars with thousands separators.

    Halves round away from zero: 1000.5 -> "$1,001", -1000 -> "-$1,000".
    """
    dollars = int(math.floor(abs(value) + 0.5))
    sign = "-" if value < 0 and dollars > 0 else ""
    return f"{sign}${dollars:,}"
