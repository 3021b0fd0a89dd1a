# tests/test_ledger_service.py
from decimal import Decimal

import pytest

from core.exceptions import (
    InstrumentNotTradable,
    InsufficientCash,
    InsufficientShares,
    InvalidQuantity,
)
from models import Instrument, Player, TradeType, create_market
from services import ledger_service


@pytest.fixture
def player():
    return Player(id="p1", name="Alice", cash=Decimal("5000"))


@pytest.fixture
def gold():
    return Instrument(symbol="Gold")


class TestBuy:
    def test_buy_debits_cash(self, player, gold):
        receipt = ledger_service.buy(player, gold, 100)

        assert receipt.total == Decimal("100.00")
        assert player.cash == Decimal("4900.00")
        assert player.holdings["Gold"] == 100
        assert player.avg_cost["Gold"] == Decimal("1.00")

    def test_weighted_average_cost(self, player, gold):
        ledger_service.buy(player, gold, 100)
        gold.current_value = Decimal("1.50")
        ledger_service.buy(player, gold, 100)

        assert player.holdings["Gold"] == 200
        assert player.avg_cost["Gold"] == Decimal("1.25")

    def test_exact_cash_is_enough(self, gold):
        player = Player(id="p1", name="Alice", cash=Decimal("10.00"))
        ledger_service.buy(player, gold, 10)
        assert player.cash == Decimal("0")

    def test_insufficient_cash(self, gold):
        player = Player(id="p1", name="Alice", cash=Decimal("9.99"))
        with pytest.raises(InsufficientCash):
            ledger_service.buy(player, gold, 10)
        assert player.holdings["Gold"] == 0
        assert player.cash == Decimal("9.99")

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_quantity_must_be_positive(self, player, gold, quantity):
        with pytest.raises(InvalidQuantity):
            ledger_service.buy(player, gold, quantity)

    def test_cannot_buy_worthless_stock(self, player, gold):
        gold.current_value = Decimal("0.00")
        with pytest.raises(InstrumentNotTradable):
            ledger_service.buy(player, gold, 1)


class TestSell:
    def test_sell_credits_cash_and_reports_pnl(self, player, gold):
        ledger_service.buy(player, gold, 100)
        gold.current_value = Decimal("1.20")

        receipt = ledger_service.sell(player, gold, 40)

        assert player.cash == Decimal("4948.00")
        assert player.holdings["Gold"] == 60
        assert player.avg_cost["Gold"] == Decimal("1.00")
        assert receipt.realized_pnl == Decimal("8.00")
        assert receipt.realized_pct == Decimal("20")

    def test_closing_position_resets_average(self, player, gold):
        ledger_service.buy(player, gold, 10)
        ledger_service.sell(player, gold, 10)

        assert player.holdings["Gold"] == 0
        assert player.avg_cost["Gold"] == Decimal("0")

    def test_cannot_sell_more_than_held(self, player, gold):
        ledger_service.buy(player, gold, 5)
        with pytest.raises(InsufficientShares):
            ledger_service.sell(player, gold, 6)
        assert player.holdings["Gold"] == 5

    def test_zero_cost_basis_has_zero_pct(self):
        assert ledger_service.realized_pct(Decimal("1.20"), Decimal("0")) == Decimal("0")

    def test_execute_trade_dispatches_by_type(self, player, gold):
        ledger_service.execute_trade(player, gold, TradeType.BUY, 3)
        receipt = ledger_service.execute_trade(player, gold, TradeType.SELL, 1)
        assert receipt.trade_type == TradeType.SELL
        assert player.holdings["Gold"] == 2


class TestLoanAndNetWorth:
    def test_truly_bankrupt_needs_no_cash_and_no_valuable_stock(self, player):
        market = create_market()
        player.cash = Decimal("0")
        assert ledger_service.is_truly_bankrupt(player, market)

        player.holdings["Oil"] = 5
        assert not ledger_service.is_truly_bankrupt(player, market)

        market["Oil"].current_value = Decimal("-0.05")
        assert ledger_service.is_truly_bankrupt(player, market)

    def test_cash_means_not_bankrupt(self, player):
        player.cash = Decimal("0.01")
        assert not ledger_service.is_truly_bankrupt(player, create_market())

    def test_grant_loan(self, player):
        player.cash = Decimal("0")
        ledger_service.grant_loan(player, Decimal("1000"))
        assert player.cash == Decimal("1000")
        assert player.has_used_loan

    def test_net_worth_deducts_repayment_only_after_loan(self, player):
        market = create_market()
        market["Gold"].current_value = Decimal("1.50")
        player.holdings["Gold"] = 100

        assert ledger_service.net_worth(player, market, Decimal("1500")) == Decimal("5150.00")

        player.has_used_loan = True
        assert ledger_service.net_worth(player, market, Decimal("1500")) == Decimal("3650.00")
        assert player.cash == Decimal("5000")

    def test_reset_assets(self, player, gold):
        ledger_service.buy(player, gold, 10)
        player.has_used_loan = True
        player.is_ready = True

        ledger_service.reset_assets(player, Decimal("2500"))

        assert player.cash == Decimal("2500")
        assert all(qty == 0 for qty in player.holdings.values())
        assert not player.has_used_loan
        assert not player.is_ready
