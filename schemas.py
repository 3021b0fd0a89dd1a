"""
Pydantic schemas

- 指令 payload 驗證（WebSocket 收到的 JSON）
- 對外輸出的房間快照 / 玩家帳本 / 排行榜
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from models import (
    ConnectionStatus,
    Direction,
    Instrument,
    Phase,
    Player,
    RollResult,
    RoomState,
    StockStatus,
    TradeType,
)

StockSymbol = Literal["Gold", "Silver", "Oil", "Industrial", "Bonds", "Grain"]


# ============ 指令 payload ============

class JoinRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=20)
    avatar: Optional[str] = ""


class SettingsUpdateRequest(BaseModel):
    initial_cash: Optional[int] = Field(None, ge=100, le=100000)
    max_rounds: Optional[int] = Field(None, ge=1, le=100)
    trading_interval: Optional[int] = Field(None, ge=1, le=20)
    enable_loans: Optional[bool] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class ReadyRequest(BaseModel):
    ready: bool


class TradeRequest(BaseModel):
    trade_type: TradeType
    symbol: StockSymbol
    quantity: int = Field(..., gt=0, le=10000)


class EmptyRequest(BaseModel):
    pass


# ============ 輸出 ============

class InstrumentView(BaseModel):
    symbol: str
    current_value: float
    history: List[float]
    status: StockStatus

    @classmethod
    def from_instrument(cls, instrument: Instrument) -> "InstrumentView":
        return cls(
            symbol=instrument.symbol,
            current_value=float(instrument.current_value),
            history=[float(v) for v in instrument.history],
            status=instrument.status,
        )


class PlayerView(BaseModel):
    id: str
    name: str
    avatar: str
    cash: float
    holdings: Dict[str, int]
    avg_cost: Dict[str, float]
    has_used_loan: bool
    is_ready: bool
    connection_status: ConnectionStatus

    @classmethod
    def from_player(cls, player: Player) -> "PlayerView":
        return cls(
            id=player.id,
            name=player.name,
            avatar=player.avatar,
            cash=float(player.cash),
            holdings=dict(player.holdings),
            avg_cost={s: float(v) for s, v in player.avg_cost.items()},
            has_used_loan=player.has_used_loan,
            is_ready=player.is_ready,
            connection_status=player.connection_status,
        )


class SettingsView(BaseModel):
    initial_cash: float
    max_rounds: int
    trading_interval: int
    enable_loans: bool


class RollView(BaseModel):
    symbol: str
    direction: Direction
    magnitude: int

    @classmethod
    def from_roll(cls, roll: RollResult) -> "RollView":
        return cls(symbol=roll.symbol, direction=roll.direction, magnitude=roll.magnitude)


class RoomSnapshot(BaseModel):
    room_id: str
    phase: Phase
    settings: SettingsView
    market: Dict[str, InstrumentView]
    players: List[PlayerView]
    host_id: Optional[str]
    current_player_id: Optional[str]
    turn_index: int
    completed_rounds: int
    market_timer: int
    ticker_log: List[str]
    last_roll: Optional[RollView]

    @classmethod
    def from_state(cls, state: RoomState) -> "RoomSnapshot":
        host = state.host
        current = state.current_player
        return cls(
            room_id=state.room_id,
            phase=state.phase,
            settings=SettingsView(
                initial_cash=float(state.settings.initial_cash),
                max_rounds=state.settings.max_rounds,
                trading_interval=state.settings.trading_interval,
                enable_loans=state.settings.enable_loans,
            ),
            market={s: InstrumentView.from_instrument(i) for s, i in state.market.items()},
            players=[PlayerView.from_player(p) for p in state.players.values()],
            host_id=host.id if host else None,
            current_player_id=current.id if current else None,
            turn_index=state.turn_index,
            completed_rounds=state.completed_rounds,
            market_timer=state.market_timer,
            ticker_log=list(state.ticker_log),
            last_roll=RollView.from_roll(state.last_roll) if state.last_roll else None,
        )


class PositionView(BaseModel):
    symbol: str
    quantity: int
    avg_cost: float
    price: float
    market_value: float
    unrealized_pnl: float


class PlayerLedgerResponse(BaseModel):
    player_id: str
    name: str
    cash: float
    has_used_loan: bool
    net_worth: float
    positions: List[PositionView]


class StandingRow(BaseModel):
    rank: int
    player_id: str
    name: str
    cash: float
    portfolio_value: float
    has_used_loan: bool
    net_worth: float


class StandingsResponse(BaseModel):
    room_id: str
    phase: Phase
    standings: List[StandingRow]


class RoomCreatedResponse(BaseModel):
    room_id: str
