"""
玩家指令（已通過 schema 驗證的 payload）

每個指令都帶 player_id（穩定的連線身分）；TimerFired 由 RoomEngine 內部產生。
"""
from dataclasses import dataclass, field
from typing import Any, Dict

from models import TradeType


@dataclass(frozen=True)
class Join:
    player_id: str
    name: str
    avatar: str = ""


@dataclass(frozen=True)
class Disconnect:
    player_id: str


@dataclass(frozen=True)
class Start:
    player_id: str


@dataclass(frozen=True)
class UpdateSettings:
    player_id: str
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SetReady:
    player_id: str
    ready: bool


@dataclass(frozen=True)
class RollDice:
    player_id: str


@dataclass(frozen=True)
class ExecuteTrade:
    player_id: str
    trade_type: TradeType
    symbol: str
    quantity: int


@dataclass(frozen=True)
class RequestLoan:
    player_id: str


@dataclass(frozen=True)
class Forfeit:
    player_id: str


@dataclass(frozen=True)
class TimerFired:
    token: int
