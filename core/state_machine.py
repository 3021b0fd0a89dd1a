"""
階段狀態機：集中管理所有階段轉換

規則：
- 所有階段變更都經過 PhaseMachine.enter_phase
- 進入新階段時：清除所有玩家的 ready、重設倒數、取代唯一的計時器、
  phase_generation + 1、發出 PhaseChanged
- 非法的轉換一律拋出 InvalidStateTransition
"""
from dataclasses import dataclass, field
from typing import Any, List
import logging

from core.events import PhaseChanged, RoomEvent, TickerLogged
from core.exceptions import InvalidStateTransition
from models import (
    TICKER_LOG_CAPACITY,
    Phase,
    RoomConfig,
    RoomState,
    TimerKind,
    TimerSpec,
)

logger = logging.getLogger(__name__)


ACTIVE_PHASES = frozenset({
    Phase.INITIAL_BUY_IN,
    Phase.ROLLING,
    Phase.RESOLVING_ROLL,
    Phase.PAYING_DIVIDENDS,
    Phase.STOCK_EVENT_PHASE,
    Phase.OPEN_MARKET,
})

TRADING_PHASES = frozenset({Phase.INITIAL_BUY_IN, Phase.OPEN_MARKET})

READY_GATED_PHASES = TRADING_PHASES

# 每一個階段允許進入的下一個階段；名冊清空時任何進行中階段都可回到 LOBBY
ALLOWED_TRANSITIONS = {
    Phase.LOBBY: {Phase.INITIAL_BUY_IN},
    Phase.INITIAL_BUY_IN: {Phase.ROLLING, Phase.LOBBY},
    Phase.ROLLING: {
        Phase.RESOLVING_ROLL, Phase.ROLLING, Phase.OPEN_MARKET, Phase.END_GAME, Phase.LOBBY,
    },
    Phase.RESOLVING_ROLL: {
        Phase.STOCK_EVENT_PHASE, Phase.PAYING_DIVIDENDS, Phase.ROLLING,
        Phase.OPEN_MARKET, Phase.END_GAME, Phase.LOBBY,
    },
    Phase.PAYING_DIVIDENDS: {Phase.ROLLING, Phase.OPEN_MARKET, Phase.END_GAME},
    Phase.STOCK_EVENT_PHASE: {Phase.ROLLING, Phase.OPEN_MARKET, Phase.END_GAME, Phase.LOBBY},
    Phase.OPEN_MARKET: {Phase.ROLLING, Phase.END_GAME, Phase.LOBBY},
    Phase.END_GAME: {Phase.INITIAL_BUY_IN},
}


@dataclass
class Transition:
    """
    一次指令的結果

    欄位：
        state: 新狀態（呼叫者原本的 state 不會被修改）
        events: 依序要發出的事件
        result: 給發送者的回傳值（例如 Join 回傳 Player）
    """
    state: RoomState
    events: List[RoomEvent] = field(default_factory=list)
    result: Any = None

    def emit(self, event: RoomEvent) -> None:
        self.events.append(event)

    def log(self, message: str) -> None:
        """寫入房間 ticker（最多 50 筆，最舊的先丟）並發出 TickerLogged"""
        ticker = self.state.ticker_log
        ticker.append(message)
        if len(ticker) > TICKER_LOG_CAPACITY:
            del ticker[:-TICKER_LOG_CAPACITY]
        self.emit(TickerLogged(message))


class PhaseMachine:
    """房間階段狀態機"""

    @staticmethod
    def can_transition(current: Phase, target: Phase) -> bool:
        return target in ALLOWED_TRANSITIONS.get(current, set())

    @staticmethod
    def enter_phase(transition: Transition, phase: Phase, config: RoomConfig) -> None:
        """
        進入新階段

        參數：
            transition: 目前正在建構的 Transition
            phase: 目標階段
            config: RoomConfig（倒數長度、tick 間隔）

        異常：
            InvalidStateTransition: 轉換不在 ALLOWED_TRANSITIONS 內
        """
        state = transition.state
        if not PhaseMachine.can_transition(state.phase, phase):
            raise InvalidStateTransition(
                f"Cannot transition room {state.room_id} from {state.phase.value} to {phase.value}"
            )

        logger.debug(f"Room {state.room_id}: {state.phase.value} -> {phase.value}")

        state.phase = phase
        state.phase_generation += 1
        for player in state.players.values():
            player.is_ready = False

        if phase == Phase.OPEN_MARKET:
            state.market_timer = config.market_duration
            PhaseMachine.schedule(transition, TimerKind.MARKET_TICK, config.market_tick)
        else:
            state.market_timer = 0
            state.timer = None

        transition.emit(PhaseChanged(phase))

    @staticmethod
    def schedule(transition: Transition, kind: TimerKind, delay: float) -> None:
        """取代房間唯一的計時器（綁定目前的 phase_generation）"""
        state = transition.state
        state.timer_seq += 1
        state.timer = TimerSpec(
            kind=kind,
            delay=delay,
            token=state.timer_seq,
            generation=state.phase_generation,
        )

    @staticmethod
    def is_current_timer(state: RoomState, token: int) -> bool:
        timer = state.timer
        return (
            timer is not None
            and timer.token == token
            and timer.generation == state.phase_generation
        )
