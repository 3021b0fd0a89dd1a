# tests/test_turn_service.py
from decimal import Decimal

import pytest

from models import GameSettings, Phase, Player, RoomState
from services import turn_service


def make_state(count=3, phase=Phase.ROLLING, max_rounds=20, trading_interval=1, turn_index=0):
    state = RoomState(
        room_id="TURN01",
        settings=GameSettings(max_rounds=max_rounds, trading_interval=trading_interval),
        phase=phase,
        turn_index=turn_index,
    )
    for i in range(count):
        player_id = f"p{i}"
        state.players[player_id] = Player(id=player_id, name=player_id, cash=Decimal("5000"))
    return state


def remove(state, index):
    player_id = list(state.players)[index]
    del state.players[player_id]
    return turn_service.correct_index_on_removal(state, index)


class TestAdvanceTurn:
    def test_moves_to_next_player(self):
        state = make_state()
        assert turn_service.advance_turn(state) == Phase.ROLLING
        assert state.turn_index == 1
        assert state.completed_rounds == 0

    def test_wrap_completes_round_and_opens_market(self):
        state = make_state(turn_index=2)
        assert turn_service.advance_turn(state) == Phase.OPEN_MARKET
        assert state.turn_index == 0
        assert state.completed_rounds == 1

    def test_market_only_every_interval(self):
        state = make_state(turn_index=2, trading_interval=2)
        assert turn_service.advance_turn(state) == Phase.ROLLING

        state.turn_index = 2
        assert turn_service.advance_turn(state) == Phase.OPEN_MARKET
        assert state.completed_rounds == 2

    def test_end_game_at_max_rounds(self):
        state = make_state(turn_index=2, max_rounds=1)
        assert turn_service.advance_turn(state) == Phase.END_GAME
        assert state.completed_rounds == 1


class TestIndexCorrection:
    def test_rolling_removed_before_current(self):
        state = make_state(turn_index=2)
        assert remove(state, 0) is False
        assert state.turn_index == 1
        assert state.current_player.id == "p2"

    def test_rolling_removed_after_current(self):
        state = make_state(turn_index=0)
        assert remove(state, 2) is False
        assert state.current_player.id == "p0"

    def test_rolling_current_roller_removed_needs_advance(self):
        state = make_state(turn_index=1)
        assert remove(state, 1) is True
        assert state.turn_index == 0

        turn_service.advance_turn(state)
        assert state.current_player.id == "p2"

    @pytest.mark.parametrize("phase", [Phase.RESOLVING_ROLL, Phase.STOCK_EVENT_PHASE, Phase.PAYING_DIVIDENDS])
    def test_resolution_removing_current_steps_back(self, phase):
        state = make_state(phase=phase, turn_index=0)
        assert remove(state, 0) is False
        assert state.turn_index == -1
        assert state.current_player is None

        turn_service.advance_turn(state)
        assert state.current_player.id == "p1"
        assert state.completed_rounds == 0

    def test_resolution_removing_later_player_keeps_index(self):
        state = make_state(phase=Phase.RESOLVING_ROLL, turn_index=0)
        remove(state, 2)
        assert state.turn_index == 0

    def test_resolution_removing_last_seat_wraps_round(self):
        state = make_state(phase=Phase.RESOLVING_ROLL, turn_index=2)
        remove(state, 2)
        turn_service.advance_turn(state)
        assert state.turn_index == 0
        assert state.completed_rounds == 1

    def test_open_market_keeps_index_in_range(self):
        state = make_state(phase=Phase.OPEN_MARKET, count=1, turn_index=0)
        state.players["p1"] = Player(id="p1", name="p1", cash=Decimal("1"))
        assert remove(state, 0) is False
        assert state.turn_index == 0
        assert state.current_player.id == "p1"
