"""
Unit tests for the three-bucket account ledger.
"""
import pytest

from accounts import (AccountBalances, allocate, apply_month, apply_period,
                      monthly_fee_rate)
from tax import TaxRates


class TestAccountBalances:
    """Test the immutable balance triple"""

    def test_total_and_add(self):
        a = AccountBalances(tax_deferred=100, tax_free=50, taxable=25)
        b = AccountBalances(tax_deferred=1, tax_free=2, taxable=3)
        assert a.total == 175
        assert (a + b) == AccountBalances(101, 52, 28)

    def test_scaled(self):
        a = AccountBalances(tax_deferred=100, tax_free=50, taxable=10)
        assert a.scaled(2) == AccountBalances(200, 100, 20)

    def test_frozen(self):
        """Test balances cannot be mutated in place"""
        a = AccountBalances()
        with pytest.raises(Exception):
            a.taxable = 5


class TestAllocate:
    """Test splitting amounts by account type"""

    def test_single_account_types(self):
        assert allocate(1_000, "tax-deferred") == AccountBalances(tax_deferred=1_000)
        assert allocate(1_000, "tax-free") == AccountBalances(tax_free=1_000)
        assert allocate(1_000, "taxable") == AccountBalances(taxable=1_000)

    def test_mixed_is_two_way(self):
        """Test mixed splits between tax-deferred and tax-free only"""
        split = allocate(1_000, "mixed", 70, 30)
        assert abs(split.tax_deferred - 700) < 1e-9
        assert abs(split.tax_free - 300) < 1e-9
        assert split.taxable == 0

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown account type"):
            allocate(1_000, "roth-ish")


class TestApplyPeriod:
    """Test one ledger step"""

    def test_contribution_then_growth(self):
        """Test contribution lands before growth is applied"""
        balances = AccountBalances(tax_deferred=1_000)
        new, flows = apply_period(balances, 0.01, 0.0, TaxRates(),
                                  contribution=AccountBalances(tax_deferred=100))
        assert abs(new.tax_deferred - 1_111) < 1e-9
        assert abs(flows.earnings - 11) < 1e-9
        assert flows.contribution == 100

    def test_fee_drag(self):
        """Test fees come off every balance"""
        balances = AccountBalances(tax_deferred=1_000, tax_free=1_000)
        new, flows = apply_period(balances, 0.0, 0.01, TaxRates())
        assert abs(new.total - 1_980) < 1e-9
        assert abs(flows.fees_paid - 20) < 1e-9

    def test_dividend_tax_on_taxable_only(self):
        """Test only the taxable balance pays dividend tax"""
        rates = TaxRates(income=25, dividends=15, capital_gains=15)
        balances = AccountBalances(tax_deferred=1_000, taxable=1_000)
        new, flows = apply_period(balances, 0.01, 0.0, rates)
        assert abs(flows.taxes_paid - 0.6) < 1e-9
        assert abs(new.taxable - 1_009.4) < 1e-9
        assert abs(new.tax_deferred - 1_010) < 1e-9

    def test_loss_month_credits_dividend_tax(self):
        rates = TaxRates(dividends=15)
        new, flows = apply_period(AccountBalances(taxable=1_000), -0.01, 0.0, rates)
        assert abs(flows.taxes_paid + 0.6) < 1e-9
        assert abs(new.taxable - 990.6) < 1e-9

    def test_withdrawal_taxes_reported_not_debited(self):
        """Test withdrawal tax is reported while balances drop by the gross draw"""
        rates = TaxRates(income=25, capital_gains=15)
        balances = AccountBalances(tax_deferred=1_000, taxable=100)
        new, flows = apply_period(balances, 0.0, 0.0, rates, withdrawal=300)
        assert new.taxable == 0
        assert abs(new.tax_deferred - 800) < 1e-9
        assert abs(flows.actual_withdrawal - 300) < 1e-9
        assert abs(flows.withdrawal_taxes - 57.5) < 1e-9
        assert flows.shortfall == 0


class TestApplyMonth:
    """Test the monthly wrapper"""

    def test_float_contribution_is_split(self):
        new, flows = apply_month(AccountBalances(), 0.0, 0.0, TaxRates(), contribution=100,
                                 account_type="mixed", tax_deferred_pct=60, tax_free_pct=40)
        assert abs(new.tax_deferred - 60) < 1e-9
        assert abs(new.tax_free - 40) < 1e-9
        assert abs(flows.contribution - 100) < 1e-9

    def test_monthly_fee_rate(self):
        assert abs(monthly_fee_rate(0.12, 0.12) - 0.0002) < 1e-12
