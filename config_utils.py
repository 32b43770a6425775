"""
Configuration Utilities for the Projection Engine
Default calculator inputs, optional engine overrides from engine_config.json,
and logging setup.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from simulation import DEFAULT_NUM_SIMS, MAX_NUM_SIMS, SimulationParams

logger = logging.getLogger(__name__)

ENGINE_CONFIG_FILE = 'engine_config.json'
ENGINE_CONFIG_KEYS = ('num_sims', 'n_workers', 'log_level', 'random_seed')
LOG_FORMAT = "%(levelname)s: %(message)s"

__all__ = [
    'DEFAULT_NUM_SIMS', 'MAX_NUM_SIMS', 'get_default_params', 'load_engine_config',
    'apply_engine_config', 'configure_logging',
]


def get_default_params() -> SimulationParams:
    """Get the calculator's default inputs"""
    return SimulationParams(
        initial_investment=10_000,
        monthly_contribution=500,
        annual_contribution_increase=2.0,
        investment_horizon=30,
        expected_annual_return=7.0,
        return_volatility=15.0,
        inflation_rate=2.0,
        income_tax_rate=25.0,
        dividend_tax_rate=15.0,
        capital_gains_tax_rate=15.0,
        expense_ratio=0.1,
        advisory_fee=0.0,
        account_type="tax-deferred",
        tax_deferred_allocation=70.0,
        tax_free_allocation=30.0,
        stocks_allocation=80.0,
        bonds_allocation=20.0,
        cash_allocation=0.0,
        retirement_enabled=False,
        annual_withdrawal=40_000,
        withdrawal_adjust_for_inflation=True,
        retirement_years=30,
        retirement_return=5.0,
        num_sims=DEFAULT_NUM_SIMS,
    )


def load_engine_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load engine overrides from a JSON file.

    Only num_sims, n_workers, log_level and random_seed are kept; anything
    else in the file is ignored with a warning.

    Args:
        path: Config file path (defaults to engine_config.json)

    Returns:
        Dictionary of overrides, empty if the file does not exist
    """
    path = path or ENGINE_CONFIG_FILE
    if not os.path.exists(path):
        logger.debug("%s does not exist; using built-in defaults", path)
        return {}

    with open(path, 'r') as f:
        config = json.load(f)
    if not isinstance(config, dict):
        raise ValueError(f"{path} must contain a JSON object")

    unknown = sorted(set(config) - set(ENGINE_CONFIG_KEYS))
    if unknown:
        logger.warning("Ignoring unknown engine config keys: %s", ", ".join(unknown))
    overrides = {k: config[k] for k in ENGINE_CONFIG_KEYS if k in config}
    logger.debug("Loaded %d engine overrides from %s", len(overrides), path)
    return overrides


def apply_engine_config(params: SimulationParams, config: Dict[str, Any]) -> SimulationParams:
    """Return a copy of params with num_sims, n_workers and random_seed overridden"""
    from dataclasses import replace

    updates = {k: config[k] for k in ('num_sims', 'n_workers', 'random_seed') if k in config}
    return replace(params, **updates)


def configure_logging(level: Any = logging.INFO) -> None:
    """Install a single stream handler on the root logger"""
    if isinstance(level, str):
        level = level.upper()
    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, '_engine_handler', False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._engine_handler = True
        root.addHandler(handler)
