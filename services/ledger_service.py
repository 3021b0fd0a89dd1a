"""
帳本服務：買賣、平均成本、貸款、淨值

買進時以加權平均更新成本；全部賣出時平均成本歸零。
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from core.exceptions import (
    InstrumentNotTradable,
    InsufficientCash,
    InsufficientShares,
    InvalidQuantity,
)
from models import SYMBOLS, Instrument, Player, TradeType, round_money


@dataclass(frozen=True)
class TradeReceipt:
    trade_type: TradeType
    symbol: str
    quantity: int
    price: Decimal
    total: Decimal
    avg_cost: Decimal  # 交易前的平均成本
    realized_pnl: Optional[Decimal] = None
    realized_pct: Optional[Decimal] = None


def realized_pnl(price: Decimal, avg_cost: Decimal, quantity: int) -> Decimal:
    return (price - avg_cost) * quantity


def realized_pct(price: Decimal, avg_cost: Decimal) -> Decimal:
    """平均成本為 0 時百分比定義為 0"""
    if avg_cost == 0:
        return Decimal("0")
    return (price - avg_cost) / avg_cost * 100


def buy(player: Player, instrument: Instrument, quantity: int) -> TradeReceipt:
    """
    以目前股價買進

    異常：
        InvalidQuantity: quantity <= 0
        InstrumentNotTradable: 股價 <= 0
        InsufficientCash: 現金不足
    """
    price = instrument.current_value
    symbol = instrument.symbol
    if quantity <= 0:
        raise InvalidQuantity(f"Quantity must be positive, got {quantity}")
    if price <= 0:
        raise InstrumentNotTradable(f"{symbol} is not tradable at {price}")

    total = price * quantity
    if player.cash < total:
        raise InsufficientCash(
            f"{player.name} needs {total} for {quantity} {symbol}, has {player.cash}"
        )

    old_qty = player.holdings[symbol]
    old_avg = player.avg_cost[symbol]
    player.avg_cost[symbol] = round_money(
        (old_avg * old_qty + price * quantity) / (old_qty + quantity)
    )
    player.cash -= total
    player.holdings[symbol] = old_qty + quantity

    return TradeReceipt(
        trade_type=TradeType.BUY,
        symbol=symbol,
        quantity=quantity,
        price=price,
        total=total,
        avg_cost=old_avg,
    )


def sell(player: Player, instrument: Instrument, quantity: int) -> TradeReceipt:
    """
    以目前股價賣出

    異常：
        InvalidQuantity: quantity <= 0
        InsufficientShares: 持股不足
    """
    price = instrument.current_value
    symbol = instrument.symbol
    if quantity <= 0:
        raise InvalidQuantity(f"Quantity must be positive, got {quantity}")

    held = player.holdings[symbol]
    if held < quantity:
        raise InsufficientShares(
            f"{player.name} holds {held} {symbol}, cannot sell {quantity}"
        )

    avg = player.avg_cost[symbol]
    total = price * quantity
    player.cash += total
    player.holdings[symbol] = held - quantity
    if player.holdings[symbol] == 0:
        player.avg_cost[symbol] = Decimal("0")

    return TradeReceipt(
        trade_type=TradeType.SELL,
        symbol=symbol,
        quantity=quantity,
        price=price,
        total=total,
        avg_cost=avg,
        realized_pnl=realized_pnl(price, avg, quantity),
        realized_pct=realized_pct(price, avg),
    )


def execute_trade(player: Player, instrument: Instrument, trade_type: TradeType, quantity: int) -> TradeReceipt:
    if trade_type == TradeType.BUY:
        return buy(player, instrument, quantity)
    return sell(player, instrument, quantity)


def portfolio_value(player: Player, market: Dict[str, Instrument]) -> Decimal:
    return sum(
        (market[symbol].current_value * qty for symbol, qty in player.holdings.items()),
        Decimal("0"),
    )


def is_truly_bankrupt(player: Player, market: Dict[str, Instrument]) -> bool:
    """
    真正破產：現金 <= 0，而且沒有任何有價值的持股可賣

    用途：
        判斷能不能申請緊急貸款
    """
    if player.cash > 0:
        return False
    return not any(
        qty > 0 and market[symbol].current_value > 0
        for symbol, qty in player.holdings.items()
    )


def grant_loan(player: Player, amount: Decimal) -> None:
    player.cash += amount
    player.has_used_loan = True


def net_worth(player: Player, market: Dict[str, Instrument], loan_repayment: Decimal) -> Decimal:
    """
    淨值 = 現金 + 持股市值 - 貸款還款（有借過才扣）

    還款只在計算淨值時扣除，從不動到玩家的即時現金
    """
    worth = player.cash + portfolio_value(player, market)
    if player.has_used_loan:
        worth -= loan_repayment
    return round_money(worth)


def reset_assets(player: Player, initial_cash: Decimal) -> None:
    """開新局時重置玩家資產（保留身分與連線狀態）"""
    player.cash = initial_cash
    player.holdings = {s: 0 for s in SYMBOLS}
    player.avg_cost = {s: Decimal("0") for s in SYMBOLS}
    player.has_used_loan = False
    player.is_ready = False
