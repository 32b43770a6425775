#!/usr/bin/env python3
"""
Demo script showing how to use the projection engine programmatically.
This demonstrates the core functionality without any UI.
"""

from dataclasses import replace

from accounts import AccountBalances
from config_utils import (apply_engine_config, configure_logging,
                          get_default_params, load_engine_config)
from engine import calculate_monthly_compound_interest
from io_utils import (create_parameters_download_json, create_summary_report,
                      export_year_by_year_csv, format_currency)
from withdrawals import withdraw


def main():
    config = load_engine_config()
    configure_logging(config.get('log_level', 'INFO'))

    print("Retirement Projection Demo")
    print("=" * 50)

    # 1. Parameters: calculator defaults with a mixed account and retirement on
    params = replace(
        get_default_params(),
        account_type="mixed",
        retirement_enabled=True,
        random_seed=42,
    )
    params = apply_engine_config(params, config)

    print("\nInputs")
    print(f"   Initial investment: {format_currency(params.initial_investment)}")
    print(f"   Monthly contribution: {format_currency(params.monthly_contribution)} "
          f"(+{params.annual_contribution_increase:.0f}%/yr)")
    print(f"   Horizon: {params.investment_horizon} years at {params.expected_annual_return:.1f}% "
          f"+/- {params.return_volatility:.0f}%")
    print(f"   Accounts: {params.tax_deferred_allocation:.0f}% tax-deferred / "
          f"{params.tax_free_allocation:.0f}% tax-free")

    # 2. Run the full projection
    results = calculate_monthly_compound_interest(params)
    summary = results.summary
    metrics = results.probability_metrics

    print("\nAccumulation")
    print(f"   Final balance: {format_currency(summary.final_balance)}")
    print(f"   In today's money: {format_currency(summary.inflation_adjusted_value)}")
    print(f"   Contributions: {format_currency(summary.total_contributions)}, "
          f"growth: {format_currency(summary.total_growth)}")
    print(f"   Fees: {format_currency(summary.total_fees)}, taxes: {format_currency(summary.total_taxes_paid)}")
    print(f"   Range (P10/P50/P90): {format_currency(metrics.lower_bound)} / "
          f"{format_currency(metrics.median)} / {format_currency(metrics.upper_bound)}")
    print(f"   Chance of reaching the headline balance: {metrics.success_probability:.1%}")

    # 3. Retirement phase
    retirement = results.retirement_phase_results
    if retirement is not None:
        print("\nRetirement")
        print(f"   Annual withdrawal: {format_currency(params.annual_withdrawal)} for "
              f"{params.retirement_years} years")
        print(f"   Projected longevity: {retirement.summary.projected_longevity:.0f} years")
        print(f"   Total withdrawn: {format_currency(retirement.summary.total_withdrawals)}")
        print(f"   Effective withdrawal tax rate: {retirement.summary.effective_withdrawal_tax_rate:.1%}")
        print(f"   Success rate: {retirement.probability_metrics.success_rate:.1%}")
        print(f"   Ending balance (worst/median/best): "
              f"{format_currency(retirement.probability_metrics.worst_case_balance)} / "
              f"{format_currency(retirement.probability_metrics.median_ending_balance)} / "
              f"{format_currency(retirement.probability_metrics.best_case_balance)}")

    # 4. Withdrawal sequencing on its own
    print("\nWithdrawal order demo")
    balances = AccountBalances(tax_deferred=50_000, tax_free=20_000, taxable=10_000)
    after, drawn = withdraw(25_000, balances, params.tax_rates)
    print(f"   Drew {format_currency(drawn.taxable_drawn)} taxable, "
          f"{format_currency(drawn.tax_free_drawn)} tax-free, "
          f"{format_currency(drawn.tax_deferred_drawn)} tax-deferred")
    print(f"   Tax owed: {format_currency(drawn.tax_owed)}; remaining {format_currency(after.total)}")

    # 5. Exports
    print("\nExports")
    params_json = create_parameters_download_json(params)
    print(f"   Parameters JSON: {len(params_json)} characters")
    csv_data = export_year_by_year_csv(results.year_by_year_details)
    print(f"   Year-by-year CSV: {len(csv_data.splitlines())} lines")
    report = create_summary_report(params, results)
    print(f"   Summary report sections: {', '.join(report)}")

    print("\nDemo completed.")


if __name__ == "__main__":
    main()
