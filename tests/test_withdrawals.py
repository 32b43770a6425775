"""
Unit tests for tax-efficient withdrawal sequencing.
"""
from accounts import AccountBalances
from tax import TaxRates
from withdrawals import WITHDRAWAL_ORDER, withdraw


class TestWithdrawalOrder:
    """Test taxable -> tax-free -> tax-deferred ordering"""

    def setup_method(self):
        self.rates = TaxRates(income=25, dividends=15, capital_gains=15)
        self.balances = AccountBalances(tax_deferred=50_000, tax_free=20_000, taxable=10_000)

    def test_order_constant(self):
        assert WITHDRAWAL_ORDER == ("taxable", "tax-free", "tax-deferred")

    def test_small_need_touches_taxable_only(self):
        """Test a need below the taxable balance records only capital-gains tax"""
        after, drawn = withdraw(4_000, self.balances, self.rates)
        assert abs(after.taxable - 6_000) < 1e-9
        assert after.tax_free == 20_000
        assert after.tax_deferred == 50_000
        assert abs(drawn.capital_gains_tax - 300) < 1e-9
        assert drawn.income_tax == 0

    def test_spills_into_tax_free_before_tax_deferred(self):
        after, drawn = withdraw(25_000, self.balances, self.rates)
        assert after.taxable == 0
        assert abs(after.tax_free - 5_000) < 1e-9
        assert after.tax_deferred == 50_000
        assert abs(drawn.tax_owed - 750) < 1e-9
        assert abs(drawn.total_drawn - 25_000) < 1e-9

    def test_reaches_tax_deferred_last(self):
        after, drawn = withdraw(40_000, self.balances, self.rates)
        assert abs(drawn.tax_deferred_drawn - 10_000) < 1e-9
        assert abs(drawn.income_tax - 2_500) < 1e-9
        assert abs(after.tax_deferred - 40_000) < 1e-9


class TestShortfall:
    """Test depletion handling"""

    def test_shortfall_reported_and_balances_non_negative(self):
        balances = AccountBalances(tax_deferred=500, tax_free=300, taxable=200)
        after, drawn = withdraw(1_500, balances, TaxRates())
        assert abs(drawn.shortfall - 500) < 1e-9
        assert drawn.depleted
        assert after.total == 0
        assert min(after.tax_deferred, after.tax_free, after.taxable) >= 0

    def test_zero_need(self):
        balances = AccountBalances(taxable=100)
        after, drawn = withdraw(0, balances, TaxRates())
        assert after == balances
        assert drawn.total_drawn == 0
        assert not drawn.depleted
