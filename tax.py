"""
Flat-rate tax model for account flows.
Dividend drag on taxable growth and per-account taxes on withdrawals.
"""
from dataclasses import dataclass

# Share of a taxable account's monthly growth treated as a taxable dividend
DIVIDEND_PORTION = 0.4
# Share of a taxable withdrawal treated as realized capital gain
CAPITAL_GAINS_PORTION = 0.5

TAXABLE = "taxable"
TAX_DEFERRED = "tax-deferred"
TAX_FREE = "tax-free"


@dataclass(frozen=True)
class TaxRates:
    """Flat tax rates in percent"""
    income: float = 0.0
    dividends: float = 0.0
    capital_gains: float = 0.0

    def is_zero(self) -> bool:
        return self.income == 0 and self.dividends == 0 and self.capital_gains == 0


def dividend_tax(taxable_earnings: float, rates: TaxRates) -> float:
    """
    Tax on the dividend portion of a taxable account's earnings.

    Signed: a loss period produces a negative value, which is credited back.

    Args:
        taxable_earnings: Raw earnings of the taxable balance for the period
        rates: Flat tax rates

    Returns:
        Tax amount for the period
    """
    return taxable_earnings * DIVIDEND_PORTION * rates.dividends / 100


def withdrawal_tax(amount: float, account: str, rates: TaxRates) -> float:
    """
    Tax owed on a withdrawal from one account type.

    Args:
        amount: Gross amount withdrawn
        account: "taxable", "tax-free" or "tax-deferred"
        rates: Flat tax rates

    Returns:
        Tax owed
    """
    if amount <= 0:
        return 0.0
    if account == TAXABLE:
        return CAPITAL_GAINS_PORTION * amount * rates.capital_gains / 100
    if account == TAX_DEFERRED:
        return amount * rates.income / 100
    if account == TAX_FREE:
        return 0.0
    raise ValueError(f"Unknown account type: {account}")


def effective_tax_rate(gross_amount: float, taxes: float) -> float:
    """Taxes as a share of a gross amount"""
    if gross_amount <= 0:
        return 0.0
    return taxes / gross_amount
