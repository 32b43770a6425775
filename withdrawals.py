"""
Tax-efficient withdrawal sequencing.
Draws taxable first, tax-free second and tax-deferred last. The order is fixed.
"""
from dataclasses import dataclass
from typing import Tuple

from accounts import AccountBalances
from tax import TAX_DEFERRED, TAX_FREE, TAXABLE, TaxRates, withdrawal_tax

WITHDRAWAL_ORDER = (TAXABLE, TAX_FREE, TAX_DEFERRED)


@dataclass(frozen=True)
class WithdrawalResult:
    """Amounts drawn per account and the tax they trigger"""
    taxable_drawn: float = 0.0
    tax_free_drawn: float = 0.0
    tax_deferred_drawn: float = 0.0
    capital_gains_tax: float = 0.0
    income_tax: float = 0.0
    shortfall: float = 0.0

    @property
    def tax_owed(self) -> float:
        return self.capital_gains_tax + self.income_tax

    @property
    def total_drawn(self) -> float:
        return self.taxable_drawn + self.tax_free_drawn + self.tax_deferred_drawn

    @property
    def depleted(self) -> bool:
        return self.shortfall > 0


def withdraw(need: float,
             balances: AccountBalances,
             tax_rates: TaxRates) -> Tuple[AccountBalances, WithdrawalResult]:
    """
    Withdraw a gross amount across balances in tax-efficient order.

    Each draw is min(remaining need, available balance); balances never go
    negative. Whatever cannot be covered is returned as the shortfall.

    Args:
        need: Gross amount required
        balances: Balances before the withdrawal
        tax_rates: Flat tax rates

    Returns:
        (balances after withdrawal, withdrawal breakdown)
    """
    remaining = max(0.0, need)
    available = {
        TAXABLE: max(0.0, balances.taxable),
        TAX_FREE: max(0.0, balances.tax_free),
        TAX_DEFERRED: max(0.0, balances.tax_deferred),
    }
    drawn = {}
    for account in WITHDRAWAL_ORDER:
        take = min(remaining, available[account])
        drawn[account] = take
        remaining -= take

    new_balances = AccountBalances(
        tax_deferred=balances.tax_deferred - drawn[TAX_DEFERRED],
        tax_free=balances.tax_free - drawn[TAX_FREE],
        taxable=balances.taxable - drawn[TAXABLE],
    )
    return new_balances, WithdrawalResult(
        taxable_drawn=drawn[TAXABLE],
        tax_free_drawn=drawn[TAX_FREE],
        tax_deferred_drawn=drawn[TAX_DEFERRED],
        capital_gains_tax=withdrawal_tax(drawn[TAXABLE], TAXABLE, tax_rates),
        income_tax=withdrawal_tax(drawn[TAX_DEFERRED], TAX_DEFERRED, tax_rates),
        shortfall=remaining,
    )
