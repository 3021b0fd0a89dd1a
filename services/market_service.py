"""
市場服務：價格變動、股利、拆股與破產

純計算邏輯，不負責階段轉換（由 core.transitions 決定下一個階段）
"""
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from models import (
    BANKRUPT_THRESHOLD,
    DIVIDEND_THRESHOLD,
    HISTORY_CAPACITY,
    INITIAL_STOCK_PRICE,
    SPLIT_THRESHOLD,
    Direction,
    Instrument,
    Player,
    StockStatus,
    round_money,
)


def status_for(value: Decimal) -> StockStatus:
    """
    依股價決定結構狀態

    規則：
    - >= 2.00: PENDING_SPLIT
    - <= 0.00: BANKRUPT
    - 其他: NORMAL
    """
    if value >= SPLIT_THRESHOLD:
        return StockStatus.PENDING_SPLIT
    if value <= BANKRUPT_THRESHOLD:
        return StockStatus.BANKRUPT
    return StockStatus.NORMAL


def append_history(instrument: Instrument, value: Decimal) -> None:
    instrument.history.append(value)
    if len(instrument.history) > HISTORY_CAPACITY:
        del instrument.history[:-HISTORY_CAPACITY]


def apply_price_move(instrument: Instrument, direction: Direction, amount: Decimal) -> Decimal:
    """
    套用 UP / DOWN 的價格變動

    參數：
        instrument: 要變動的股票
        direction: Direction.UP 或 Direction.DOWN
        amount: 變動金額（元，例如 0.05）

    返回：
        新股價（四捨五入到兩位小數）

    注意：
        股價可能變成 <= 0 或 >= 2，status 會跟著更新，
        等 STOCK_EVENT_PHASE 再處理拆股 / 破產
    """
    if direction == Direction.UP:
        value = instrument.current_value + amount
    elif direction == Direction.DOWN:
        value = instrument.current_value - amount
    else:
        raise ValueError(f"{direction} is not a price move")

    value = round_money(value)
    instrument.current_value = value
    append_history(instrument, value)
    instrument.status = status_for(value)
    return value


def dividend_payable(instrument: Instrument) -> bool:
    """股價 > 1.00 才發股利"""
    return instrument.current_value > DIVIDEND_THRESHOLD


def pay_dividend(players: Iterable[Player], symbol: str, amount: Decimal) -> List[Tuple[Player, Decimal]]:
    """
    發放股利給所有持股者（每股 amount 元）

    返回：
        [(player, payout), ...]，只包含有持股的玩家
    """
    payouts = []
    for player in players:
        shares = player.holdings.get(symbol, 0)
        if shares > 0:
            payout = amount * shares
            player.cash += payout
            payouts.append((player, payout))
    return payouts


def resolve_bankruptcy(instrument: Instrument, players: Iterable[Player]) -> None:
    """破產：所有持股歸零，股價與歷史完全重置為 [1.00]"""
    for player in players:
        player.holdings[instrument.symbol] = 0
        player.avg_cost[instrument.symbol] = Decimal("0")
    instrument.current_value = INITIAL_STOCK_PRICE
    instrument.history = [INITIAL_STOCK_PRICE]
    instrument.status = StockStatus.NORMAL


def resolve_split(instrument: Instrument, players: Iterable[Player]) -> None:
    """拆股：持股加倍、平均成本減半（總成本不變），股價回到 1.00"""
    for player in players:
        shares = player.holdings.get(instrument.symbol, 0)
        if shares > 0:
            player.holdings[instrument.symbol] = shares * 2
            player.avg_cost[instrument.symbol] = player.avg_cost[instrument.symbol] / 2
    instrument.current_value = INITIAL_STOCK_PRICE
    append_history(instrument, INITIAL_STOCK_PRICE)
    instrument.status = StockStatus.NORMAL


def resolve_structural_events(
    market: Dict[str, Instrument], players: List[Player]
) -> List[Tuple[str, StockStatus]]:
    """
    處理所有待決的拆股與破產（每支股票獨立處理）

    返回：
        [(symbol, 處理前的 status), ...]
    """
    resolved = []
    for symbol, instrument in market.items():
        if instrument.status == StockStatus.BANKRUPT:
            resolve_bankruptcy(instrument, players)
            resolved.append((symbol, StockStatus.BANKRUPT))
        elif instrument.status == StockStatus.PENDING_SPLIT:
            resolve_split(instrument, players)
            resolved.append((symbol, StockStatus.PENDING_SPLIT))
    return resolved
