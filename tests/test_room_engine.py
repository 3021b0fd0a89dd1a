# tests/test_room_engine.py
import asyncio
from decimal import Decimal

import pytest

from conftest import FixedDice, RecordingSink, roll
from core.commands import ExecuteTrade, Join, RollDice, SetReady, Start
from core.events import DiceRolled, PhaseChanged, StateSnapshot, TickerLogged
from core.room_engine import RoomEngine
from models import Phase, RoomConfig, TradeType

FAST = RoomConfig(
    roll_settle_delay=0.01,
    stock_event_delay=0.01,
    market_duration=3,
    market_tick=0.01,
)


async def wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


async def make_engine(sink=None, dice=None, ready=True):
    engine = RoomEngine("ENG001", sink=sink, config=FAST, dice=dice)
    await engine.dispatch(Join("alice", "Alice"))
    await engine.dispatch(Join("bob", "Bob"))
    await engine.dispatch(Start("alice"))
    if ready:
        await engine.dispatch(SetReady("alice", True))
        await engine.dispatch(SetReady("bob", True))
    return engine


@pytest.mark.asyncio
async def test_join_returns_player():
    engine = RoomEngine("ENG001", config=FAST)
    result = await engine.dispatch(Join("alice", "Alice"))

    assert result.ok
    assert result.value.name == "Alice"
    assert engine.state.host.id == "alice"


@pytest.mark.asyncio
async def test_rejected_command_is_not_broadcast():
    sink = RecordingSink()
    engine = await make_engine(sink=sink, ready=False)
    await engine.drain()
    before = len(sink.events)

    result = await engine.dispatch(Start("bob"))
    await engine.drain()

    assert not result.ok
    assert result.code == "not_host"
    assert len(sink.events) == before
    assert engine.state.phase == Phase.INITIAL_BUY_IN


@pytest.mark.asyncio
async def test_events_end_with_snapshot():
    sink = RecordingSink()
    engine = RoomEngine("ENG001", sink=sink, config=FAST)
    await engine.dispatch(Join("alice", "Alice"))
    await engine.drain()

    room_id, last = sink.events[-1]
    assert room_id == "ENG001"
    assert isinstance(last, StateSnapshot)
    assert sink.of_type(TickerLogged)[0].message == "Alice joined the game."


@pytest.mark.asyncio
async def test_roll_settles_on_timer():
    sink = RecordingSink()
    dice = FixedDice([roll("Gold", "UP", 10)])
    engine = await make_engine(sink=sink, dice=dice)

    result = await engine.dispatch(RollDice("alice"))
    assert result.ok
    assert engine.state.phase == Phase.RESOLVING_ROLL

    await wait_for(lambda: engine.state.phase == Phase.ROLLING)
    await engine.drain()
    assert engine.state.current_player.id == "bob"
    assert engine.state.market["Gold"].current_value == Decimal("1.10")
    assert sink.of_type(DiceRolled)[0].roll.symbol == "Gold"
    await engine.close()


@pytest.mark.asyncio
async def test_market_window_ticks_down():
    sink = RecordingSink()
    engine = await make_engine(sink=sink, dice=FixedDice([roll("Gold", "DIVIDEND", 5)]))

    await engine.dispatch(RollDice("alice"))
    await wait_for(lambda: engine.state.current_player is not None
                   and engine.state.current_player.id == "bob"
                   and engine.state.phase == Phase.ROLLING)
    await engine.drain()
    await engine.dispatch(RollDice("bob"))
    await wait_for(lambda: engine.state.completed_rounds == 1
                   and engine.state.phase == Phase.ROLLING)
    await engine.drain()

    phases = [e.phase for e in sink.of_type(PhaseChanged)]
    assert phases[-2:] == [Phase.OPEN_MARKET, Phase.ROLLING]
    messages = [e.message for e in sink.of_type(TickerLogged)]
    assert "Trading window closed." in messages
    assert engine.state.market_timer == 0
    assert engine.state.completed_rounds == 1
    await engine.close()


@pytest.mark.asyncio
async def test_commands_are_serialized():
    engine = await make_engine(ready=False)
    buy = ExecuteTrade("alice", TradeType.BUY, "Gold", 1)

    results = await asyncio.gather(*(engine.dispatch(buy) for _ in range(20)))

    assert all(r.ok for r in results)
    alice = engine.state.players["alice"]
    assert alice.holdings["Gold"] == 20
    assert alice.cash == Decimal("4980.00")


@pytest.mark.asyncio
async def test_sink_failure_does_not_break_room():
    class BrokenSink:
        async def publish(self, room_id, event):
            raise RuntimeError("socket closed")

    engine = RoomEngine("ENG001", sink=BrokenSink(), config=FAST)
    result = await engine.dispatch(Join("alice", "Alice"))
    await engine.drain()

    assert result.ok
    assert "alice" in engine.state.players
    assert (await engine.dispatch(Join("bob", "Bob"))).ok
    await engine.close()


@pytest.mark.asyncio
async def test_slow_sink_does_not_block_commands():
    class GatedSink(RecordingSink):
        def __init__(self):
            super().__init__()
            self.gate = asyncio.Event()

        async def publish(self, room_id, event):
            await self.gate.wait()
            await super().publish(room_id, event)

    sink = GatedSink()
    engine = RoomEngine("ENG001", sink=sink, config=FAST)

    first = await asyncio.wait_for(engine.dispatch(Join("alice", "Alice")), timeout=0.5)
    second = await asyncio.wait_for(engine.dispatch(Join("bob", "Bob")), timeout=0.5)
    third = await asyncio.wait_for(engine.dispatch(Start("alice")), timeout=0.5)

    assert first.ok and second.ok and third.ok
    assert engine.state.phase == Phase.INITIAL_BUY_IN
    assert sink.events == []

    sink.gate.set()
    await asyncio.wait_for(engine.drain(), timeout=1.0)

    messages = [e.message for e in sink.of_type(TickerLogged)]
    assert messages == ["Alice joined the game.", "Bob joined the game.", "Game Started! Initial Buy-in Phase."]
    assert isinstance(sink.events[-1][1], StateSnapshot)
    await engine.close()


@pytest.mark.asyncio
async def test_phase_change_cancels_pending_tick():
    sink = RecordingSink()
    config = RoomConfig(roll_settle_delay=0.01, market_tick=0.05)
    engine = RoomEngine("ENG001", sink=sink, config=config, dice=FixedDice([roll("Gold", "DIVIDEND", 5)]))
    for player_id, name in (("alice", "Alice"), ("bob", "Bob")):
        await engine.dispatch(Join(player_id, name))
    await engine.dispatch(Start("alice"))
    for player_id in ("alice", "bob"):
        await engine.dispatch(SetReady(player_id, True))

    for player_id in ("alice", "bob"):
        await engine.dispatch(RollDice(player_id))
        await wait_for(lambda: engine.state.phase in (Phase.ROLLING, Phase.OPEN_MARKET))

    assert engine.state.phase == Phase.OPEN_MARKET
    await engine.dispatch(SetReady("alice", True))
    await engine.dispatch(SetReady("bob", True))
    assert engine.state.phase == Phase.ROLLING

    await asyncio.sleep(0.15)
    assert engine.state.phase == Phase.ROLLING
    assert engine.state.market_timer == 0
    await engine.close()


@pytest.mark.asyncio
async def test_close_stops_timers_and_commands():
    sink = RecordingSink()
    engine = await make_engine(sink=sink, dice=FixedDice([roll("Gold", "UP", 5)]))
    await engine.dispatch(RollDice("alice"))
    await engine.drain()

    await engine.close()
    await asyncio.sleep(0.05)

    assert engine.state.phase == Phase.RESOLVING_ROLL
    result = await engine.dispatch(SetReady("bob", True))
    assert not result.ok
    assert sink.of_type(PhaseChanged)[-1].phase == Phase.RESOLVING_ROLL
