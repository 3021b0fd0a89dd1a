"""
Room API Endpoints

職責：
1. 產生新的房間代碼（房間本身在第一位玩家 JOIN 時建立）
2. 查詢房間快照
3. 查詢排行榜（淨值已扣除貸款還款）
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from api.dependencies import get_registry
from core.exceptions import RoomNotFound
from core.room_manager import RoomRegistry
from schemas import RoomCreatedResponse, RoomSnapshot, StandingRow, StandingsResponse
from services.history_service import get_standings

router = APIRouter(prefix="/api/rooms", tags=["rooms"])
logger = logging.getLogger(__name__)


@router.post("", response_model=RoomCreatedResponse)
def create_room(registry: RoomRegistry = Depends(get_registry)):
    """
    建立新房間

    返回：
        - room_id: 6 位房間代碼
    """
    room_id = registry.new_room_code()
    registry.get_or_create(room_id)
    return RoomCreatedResponse(room_id=room_id)


@router.get("/{room_id}/state", response_model=RoomSnapshot)
def get_room_state(room_id: str, registry: RoomRegistry = Depends(get_registry)):
    """取得房間完整快照（與 WebSocket 的 STATE_SYNC 相同）"""
    try:
        room = registry.get(room_id.upper())
        return RoomSnapshot.from_state(room.state)
    except RoomNotFound as e:
        logger.info(f"Room lookup failed: {e}")
        raise HTTPException(status_code=404, detail="Room not found")


@router.get("/{room_id}/standings", response_model=StandingsResponse)
def get_room_standings(room_id: str, registry: RoomRegistry = Depends(get_registry)):
    """
    取得排行榜

    返回：
        - standings: 依淨值排序（高到低），借過緊急貸款的玩家扣除還款金額
    """
    try:
        room = registry.get(room_id.upper())
    except RoomNotFound as e:
        logger.info(f"Room lookup failed: {e}")
        raise HTTPException(status_code=404, detail="Room not found")

    state = room.state
    rows = get_standings(state, room.config.loan_repayment)
    return StandingsResponse(
        room_id=state.room_id,
        phase=state.phase,
        standings=[
            StandingRow(
                rank=row["rank"],
                player_id=row["player_id"],
                name=row["name"],
                cash=float(row["cash"]),
                portfolio_value=float(row["portfolio_value"]),
                has_used_loan=row["has_used_loan"],
                net_worth=float(row["net_worth"]),
            )
            for row in rows
        ],
    )
