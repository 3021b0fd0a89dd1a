"""
Player API Endpoints

職責：
1. 查詢玩家帳本（現金、持股、平均成本、未實現損益、淨值）
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from api.dependencies import get_registry
from core.exceptions import RoomNotFound
from core.room_manager import RoomRegistry
from schemas import PlayerLedgerResponse, PositionView
from services.ledger_service import net_worth

router = APIRouter(prefix="/api/rooms", tags=["players"])
logger = logging.getLogger(__name__)


@router.get("/{room_id}/players/{player_id}", response_model=PlayerLedgerResponse)
def get_player_ledger(room_id: str, player_id: str, registry: RoomRegistry = Depends(get_registry)):
    """
    取得玩家帳本

    參數：
        room_id: 房間代碼
        player_id: 玩家 ID

    返回：
        - positions: 每支股票的持股、平均成本、市值、未實現損益
        - net_worth: 淨值（借過緊急貸款會扣除還款）
    """
    try:
        room = registry.get(room_id.upper())
    except RoomNotFound as e:
        logger.info(f"Room lookup failed: {e}")
        raise HTTPException(status_code=404, detail="Room not found")

    state = room.state
    player = state.players.get(player_id)
    if player is None:
        logger.info(f"Player {player_id} not found in room {state.room_id}")
        raise HTTPException(status_code=404, detail="Player not found")

    positions = []
    for symbol, instrument in state.market.items():
        quantity = player.holdings[symbol]
        avg_cost = player.avg_cost[symbol]
        price = instrument.current_value
        positions.append(PositionView(
            symbol=symbol,
            quantity=quantity,
            avg_cost=float(avg_cost),
            price=float(price),
            market_value=float(price * quantity),
            unrealized_pnl=float((price - avg_cost) * quantity),
        ))

    return PlayerLedgerResponse(
        player_id=player.id,
        name=player.name,
        cash=float(player.cash),
        has_used_loan=player.has_used_loan,
        net_worth=float(net_worth(player, state.market, room.config.loan_repayment)),
        positions=positions,
    )
