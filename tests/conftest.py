# tests/conftest.py
from typing import Iterable, List

import pytest

from core.commands import Join, SetReady, Start, TimerFired
from core.transitions import apply_command, new_room_state
from models import Direction, RollResult, RoomState
from services.dice_service import DiceRoller


class FixedDice(DiceRoller):
    """依序回傳預先排好的擲骰結果（循環使用）"""

    def __init__(self, rolls: Iterable[RollResult]):
        super().__init__()
        self.rolls: List[RollResult] = list(rolls)
        self.count = 0

    def roll(self) -> RollResult:
        roll = self.rolls[self.count % len(self.rolls)]
        self.count += 1
        return roll


class RecordingSink:
    """記錄所有發出的事件"""

    def __init__(self):
        self.events = []

    async def publish(self, room_id, event):
        self.events.append((room_id, event))

    def of_type(self, event_type):
        return [event for _, event in self.events if isinstance(event, event_type)]


def roll(symbol: str, direction: str, magnitude: int) -> RollResult:
    return RollResult(symbol=symbol, direction=Direction(direction), magnitude=magnitude)


def apply(state: RoomState, command, dice=None, config=None) -> RoomState:
    return apply_command(state, command, config=config, dice=dice).state


def fire(state: RoomState, dice=None, config=None) -> RoomState:
    """讓目前待執行的計時器到期"""
    assert state.timer is not None, "no pending timer"
    return apply(state, TimerFired(state.timer.token), dice=dice, config=config)


def seat(state: RoomState, *names: str) -> RoomState:
    for name in names:
        state = apply(state, Join(player_id=name.lower(), name=name))
    return state


def start_rolling(state: RoomState) -> RoomState:
    """Host 開始遊戲，所有人 ready，進入 ROLLING"""
    host = state.host.id
    state = apply(state, Start(host))
    for player_id in list(state.players):
        state = apply(state, SetReady(player_id, True))
    return state


@pytest.fixture
def lobby():
    """LOBBY 中的兩人房間：alice（Host）與 bob"""
    return seat(new_room_state("TEST01"), "Alice", "Bob")


@pytest.fixture
def buy_in(lobby):
    return apply(lobby, Start("alice"))


@pytest.fixture
def rolling(lobby):
    return start_rolling(lobby)


@pytest.fixture
def three_rolling():
    return start_rolling(seat(new_room_state("TEST03"), "Alice", "Bob", "Carol"))


@pytest.fixture
def dividend_dice():
    """不會造成拆股或破產的骰子（Gold 在 1.00 不發股利）"""
    return FixedDice([roll("Gold", "DIVIDEND", 5)])
