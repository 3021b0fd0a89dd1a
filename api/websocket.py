"""
WebSocket Endpoint

職責：
1. 管理每個房間的連線（ConnectionManager 同時是 RoomEngine 的 EventSink）
2. 驗證玩家送來的 JSON（pydantic schemas），轉成 core.commands 的指令
3. 被拒絕的指令只回 ERROR 給發送者，不廣播
4. 身分驗證：第一次使用某個 player_id 時由 server 發一個 session token
   （只放在 HELLO / JOINED），之後用同一個 player_id 連線必須帶 ?token=

訊息格式：{"type": "JOIN", "name": "Alice"}、{"type": "EXECUTE_TRADE",
"trade_type": "BUY", "symbol": "Gold", "quantity": 10} ...
"""
import json
import secrets
import time
import uuid
from typing import Any, Callable, Dict, Optional, Tuple
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ValidationError

from api.dependencies import get_registry
from core.commands import (
    Disconnect,
    ExecuteTrade,
    Forfeit,
    Join,
    RequestLoan,
    RollDice,
    SetReady,
    Start,
    UpdateSettings,
)
from core.events import (
    DiceRolled,
    MarketUpdated,
    PhaseChanged,
    RoomEvent,
    StateSnapshot,
    TickerLogged,
)
from core.exceptions import RoomNotFound
from core.room_manager import RoomRegistry
from schemas import (
    EmptyRequest,
    InstrumentView,
    JoinRequest,
    PlayerView,
    ReadyRequest,
    RoomSnapshot,
    SettingsUpdateRequest,
    TradeRequest,
)

router = APIRouter(tags=["websocket"])
logger = logging.getLogger(__name__)


class ConnectionManager:
    """room_id -> {player_id: WebSocket}"""

    def __init__(self):
        self.active_connections: Dict[str, Dict[str, WebSocket]] = {}
        self.session_tokens: Dict[str, Dict[str, str]] = {}

    def authenticate(
        self, room_id: str, player_id: str, token: Optional[str], seated: bool
    ) -> Optional[str]:
        """
        確認連線者是不是這個 player_id 的擁有者

        參數：
            token: 連線時帶的 ?token=
            seated: player_id 是否已經坐在房間裡

        返回：
            這個玩家的 session token；驗證失敗回傳 None

        注意：
            沒見過的 player_id 直接發新 token；已入座卻沒有 token 紀錄的一律拒絕
        """
        tokens = self.session_tokens.setdefault(room_id, {})
        known = tokens.get(player_id)
        if known is None:
            if seated:
                return None
            known = secrets.token_urlsafe(24)
            tokens[player_id] = known
            return known
        if token is not None and secrets.compare_digest(known, token):
            return known
        return None

    def connect(self, websocket: WebSocket, room_id: str, player_id: str) -> None:
        self.active_connections.setdefault(room_id, {})[player_id] = websocket

    def disconnect(self, websocket: WebSocket, room_id: str, player_id: str) -> bool:
        """
        移除連線

        返回：
            True 如果這條連線仍是該玩家目前的連線（沒有被新的連線取代）
        """
        connections = self.active_connections.get(room_id)
        if not connections or connections.get(player_id) is not websocket:
            return False
        del connections[player_id]
        if not connections:
            del self.active_connections[room_id]
        return True

    async def send_personal_message(self, message: dict, websocket: WebSocket) -> None:
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.debug(f"Failed to send message: {e}")

    async def broadcast(self, message: dict, room_id: str) -> None:
        for websocket in list(self.active_connections.get(room_id, {}).values()):
            await self.send_personal_message(message, websocket)

    async def publish(self, room_id: str, event: RoomEvent) -> None:
        await self.broadcast(event_to_message(event), room_id)


def event_to_message(event: RoomEvent) -> dict:
    if isinstance(event, StateSnapshot):
        return {
            "type": "STATE_SYNC",
            "state": RoomSnapshot.from_state(event.state).model_dump(mode="json"),
        }
    if isinstance(event, PhaseChanged):
        return {"type": "PHASE_CHANGED", "phase": event.phase.value}
    if isinstance(event, DiceRolled):
        return {
            "type": "DICE_ROLLED",
            "player": event.player_name,
            "symbol": event.roll.symbol,
            "direction": event.roll.direction.value,
            "magnitude": event.roll.magnitude,
            "amount": float(event.roll.amount),
        }
    if isinstance(event, MarketUpdated):
        return {
            "type": "MARKET_UPDATED",
            "market": {
                symbol: InstrumentView.from_instrument(instrument).model_dump(mode="json")
                for symbol, instrument in event.market.items()
            },
        }
    if isinstance(event, TickerLogged):
        return {"type": "TICKER_LOG", "message": event.message}
    raise TypeError(f"Unknown event {event!r}")


manager = ConnectionManager()

# message type -> (payload schema, 建立指令的函式)
COMMANDS: Dict[str, Tuple[type, Callable[[str, Any], Any]]] = {
    "JOIN": (JoinRequest, lambda pid, req: Join(pid, req.name, req.avatar or "")),
    "START": (EmptyRequest, lambda pid, req: Start(pid)),
    "UPDATE_SETTINGS": (
        SettingsUpdateRequest, lambda pid, req: UpdateSettings(pid, req.changes())
    ),
    "SET_READY": (ReadyRequest, lambda pid, req: SetReady(pid, req.ready)),
    "ROLL_DICE": (EmptyRequest, lambda pid, req: RollDice(pid)),
    "EXECUTE_TRADE": (
        TradeRequest,
        lambda pid, req: ExecuteTrade(pid, req.trade_type, req.symbol, req.quantity),
    ),
    "REQUEST_LOAN": (EmptyRequest, lambda pid, req: RequestLoan(pid)),
    "FORFEIT": (EmptyRequest, lambda pid, req: Forfeit(pid)),
}


def build_command(player_id: str, message: dict):
    """
    把 JSON 訊息轉成指令

    異常：
        KeyError: 未知的訊息類型
        ValidationError: payload 不符合 schema
    """
    message_type = message.get("type")
    schema, factory = COMMANDS[message_type]
    payload = {k: v for k, v in message.items() if k != "type"}
    request: BaseModel = schema.model_validate(payload)
    return factory(player_id, request)


def error_message(code: str, detail: Optional[str] = None) -> dict:
    return {"type": "ERROR", "code": code, "detail": detail}


@router.websocket("/ws/{room_id}")
async def websocket_endpoint(
    websocket: WebSocket,
    room_id: str,
    player_id: Optional[str] = Query(default=None),
    token: Optional[str] = Query(default=None),
    registry: RoomRegistry = Depends(get_registry),
):
    """
    一個玩家（或觀察者）在某個房間的連線

    流程：
    1. 指定或產生 player_id，驗證 session token，回傳 HELLO（含 token）
    2. 房間存在就先送一次 STATE_SYNC
    3. 迴圈處理指令；斷線時通知房間（保留玩家供重新連線）
    """
    room_id = room_id.upper()
    player_id = player_id or uuid.uuid4().hex[:10]

    await websocket.accept()

    seated = room_id in registry and player_id in registry.get(room_id).state.players
    session_token = manager.authenticate(room_id, player_id, token, seated)
    if session_token is None:
        logger.warning(f"Rejected connection to room {room_id} as {player_id}: invalid session token")
        await manager.send_personal_message(
            error_message("invalid_token", "A valid session token is required for this player"), websocket
        )
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager.connect(websocket, room_id, player_id)
    await manager.send_personal_message(
        {"type": "HELLO", "player_id": player_id, "token": session_token}, websocket
    )

    if room_id in registry:
        snapshot = event_to_message(StateSnapshot(registry.get(room_id).state))
        await manager.send_personal_message(snapshot, websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                message = None
            if not isinstance(message, dict):
                await manager.send_personal_message(error_message("invalid_payload"), websocket)
                continue

            if message.get("type") == "PING":
                await manager.send_personal_message({"type": "PONG", "ts": time.time()}, websocket)
                continue

            try:
                command = build_command(player_id, message)
            except (KeyError, TypeError):
                await manager.send_personal_message(
                    error_message("unknown_command", str(message.get("type"))), websocket
                )
                continue
            except ValidationError as e:
                await manager.send_personal_message(
                    error_message("invalid_payload", str(e)), websocket
                )
                continue

            try:
                room = registry.get_or_create(room_id) if isinstance(command, Join) else registry.get(room_id)
            except RoomNotFound as e:
                await manager.send_personal_message(error_message("room_not_found", str(e)), websocket)
                continue

            result = await room.dispatch(command)
            if not result.ok:
                await manager.send_personal_message(
                    error_message(result.code or "rejected", str(result.error or "")), websocket
                )
            elif isinstance(command, Join):
                await manager.send_personal_message(
                    {
                        "type": "JOINED",
                        "player": PlayerView.from_player(result.value).model_dump(mode="json"),
                        "token": session_token,
                    },
                    websocket,
                )

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error in room {room_id} for {player_id}: {e}", exc_info=True)
    finally:
        if manager.disconnect(websocket, room_id, player_id) and room_id in registry:
            room = registry.get(room_id)
            if player_id in room.state.players:
                await room.dispatch(Disconnect(player_id))
