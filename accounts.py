"""
Three-bucket account ledger.
Balances are immutable values; each period step returns a new AccountBalances
alongside the flows that produced it.
"""
from dataclasses import dataclass, replace
from typing import Tuple, Union

from tax import TAX_DEFERRED, TAX_FREE, TAXABLE, TaxRates, dividend_tax

MIXED = "mixed"
ACCOUNT_TYPES = (TAXABLE, TAX_DEFERRED, TAX_FREE, MIXED)


@dataclass(frozen=True)
class AccountBalances:
    """Tax-deferred, tax-free and taxable balances"""
    tax_deferred: float = 0.0
    tax_free: float = 0.0
    taxable: float = 0.0

    @property
    def total(self) -> float:
        return self.tax_deferred + self.tax_free + self.taxable

    def __add__(self, other: "AccountBalances") -> "AccountBalances":
        return AccountBalances(
            tax_deferred=self.tax_deferred + other.tax_deferred,
            tax_free=self.tax_free + other.tax_free,
            taxable=self.taxable + other.taxable,
        )

    def scaled(self, factor: float) -> "AccountBalances":
        return AccountBalances(
            tax_deferred=self.tax_deferred * factor,
            tax_free=self.tax_free * factor,
            taxable=self.taxable * factor,
        )


@dataclass(frozen=True)
class PeriodResult:
    """Flows produced by one ledger step"""
    contribution: float = 0.0
    earnings: float = 0.0
    fees_paid: float = 0.0
    taxes_paid: float = 0.0
    withdrawal_taxes: float = 0.0
    actual_withdrawal: float = 0.0
    shortfall: float = 0.0


def allocate(amount: float,
             account_type: str,
             tax_deferred_pct: float = 0.0,
             tax_free_pct: float = 0.0) -> AccountBalances:
    """
    Split an amount across balances by account type.

    Mixed accounts split between tax-deferred and tax-free only; the taxable
    share is always zero.
    """
    if account_type == TAX_DEFERRED:
        return AccountBalances(tax_deferred=amount)
    if account_type == TAX_FREE:
        return AccountBalances(tax_free=amount)
    if account_type == TAXABLE:
        return AccountBalances(taxable=amount)
    if account_type == MIXED:
        return AccountBalances(
            tax_deferred=amount * tax_deferred_pct / 100,
            tax_free=amount * tax_free_pct / 100,
        )
    raise ValueError(f"Unknown account type: {account_type}")


def initial_balances(params) -> AccountBalances:
    """Opening balances for a SimulationParams"""
    return allocate(params.initial_investment, params.account_type,
                    params.tax_deferred_allocation, params.tax_free_allocation)


def monthly_fee_rate(expense_ratio: float, advisory_fee: float) -> float:
    """Combined monthly fee drag as a decimal"""
    return (expense_ratio / 12 + advisory_fee / 12) / 100


def apply_period(balances: AccountBalances,
                 period_return: float,
                 fee_rate: float,
                 tax_rates: TaxRates,
                 contribution: AccountBalances = AccountBalances(),
                 withdrawal: float = 0.0) -> Tuple[AccountBalances, PeriodResult]:
    """
    Advance balances by one period.

    Order: contribution or withdrawal, fee drag, dividend tax on the taxable
    balance, then growth. Earnings are measured on the post-cash-flow balance
    before fees.

    Args:
        balances: Balances at the start of the period
        period_return: Return for the period as a decimal
        fee_rate: Fee drag for the period as a decimal
        tax_rates: Flat tax rates
        contribution: Contribution already split across balances
        withdrawal: Gross amount to withdraw through the withdrawal sequencer

    Returns:
        (new balances, period flows)
    """
    from withdrawals import withdraw

    withdrawal_taxes = 0.0
    actual_withdrawal = 0.0
    shortfall = 0.0
    if withdrawal > 0:
        balances, drawn = withdraw(withdrawal, balances, tax_rates)
        withdrawal_taxes = drawn.tax_owed
        actual_withdrawal = drawn.total_drawn
        shortfall = drawn.shortfall
    balances = balances + contribution

    earnings_deferred = balances.tax_deferred * period_return
    earnings_free = balances.tax_free * period_return
    earnings_taxable = balances.taxable * period_return

    fee_deferred = balances.tax_deferred * fee_rate
    fee_free = balances.tax_free * fee_rate
    fee_taxable = balances.taxable * fee_rate
    balances = AccountBalances(
        tax_deferred=balances.tax_deferred - fee_deferred,
        tax_free=balances.tax_free - fee_free,
        taxable=balances.taxable - fee_taxable,
    )

    taxes = 0.0
    if balances.taxable > 0:
        taxes = dividend_tax(earnings_taxable, tax_rates)
        balances = replace(balances, taxable=balances.taxable - taxes)

    balances = AccountBalances(
        tax_deferred=balances.tax_deferred + earnings_deferred,
        tax_free=balances.tax_free + earnings_free,
        taxable=balances.taxable + earnings_taxable,
    )

    return balances, PeriodResult(
        contribution=contribution.total,
        earnings=earnings_deferred + earnings_free + earnings_taxable,
        fees_paid=fee_deferred + fee_free + fee_taxable,
        taxes_paid=taxes,
        withdrawal_taxes=withdrawal_taxes,
        actual_withdrawal=actual_withdrawal,
        shortfall=shortfall,
    )


def apply_month(balances: AccountBalances,
                monthly_return: float,
                monthly_fee: float,
                tax_rates: TaxRates,
                contribution: Union[float, AccountBalances] = 0.0,
                account_type: str = TAX_DEFERRED,
                tax_deferred_pct: float = 0.0,
                tax_free_pct: float = 0.0,
                withdrawal: float = 0.0) -> Tuple[AccountBalances, PeriodResult]:
    """One monthly ledger step; a float contribution is split by account type"""
    if not isinstance(contribution, AccountBalances):
        contribution = allocate(contribution, account_type, tax_deferred_pct, tax_free_pct)
    return apply_period(balances, monthly_return, monthly_fee, tax_rates,
                        contribution=contribution, withdrawal=withdrawal)
