"""
房間對外發出的事件

RoomEngine 把事件依序交給 EventSink（通常是 WebSocket 的 ConnectionManager）。
每個成功的指令最後都會有一個 StateSnapshot。
"""
import copy
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Union

from models import Instrument, Phase, RollResult, RoomState


@dataclass(frozen=True)
class StateSnapshot:
    state: RoomState


@dataclass(frozen=True)
class PhaseChanged:
    phase: Phase


@dataclass(frozen=True)
class DiceRolled:
    roll: RollResult
    player_name: Optional[str]


@dataclass(frozen=True)
class MarketUpdated:
    market: Dict[str, Instrument]

    @classmethod
    def of(cls, market: Dict[str, Instrument]) -> "MarketUpdated":
        return cls(market=copy.deepcopy(market))


@dataclass(frozen=True)
class TickerLogged:
    message: str


RoomEvent = Union[StateSnapshot, PhaseChanged, DiceRolled, MarketUpdated, TickerLogged]


class EventSink(Protocol):
    async def publish(self, room_id: str, event: RoomEvent) -> None:
        ...


class NullSink:
    """不轉送任何事件（沒有傳輸層時使用）"""

    async def publish(self, room_id: str, event: RoomEvent) -> None:
        return None
