"""
房間狀態轉換：apply_command(state, command) -> Transition

流程：
1. 複製一份 state（呼叫者手上的 state 永遠不會被修改）
2. 依指令類型交給對應的 handler
3. handler 驗證階段 / 授權 / 規則，失敗就拋出 CommandRejected
4. 成功時事件最後附上一個 StateSnapshot

計時器到期也是一個指令（TimerFired），所以整個狀態機不需要真的計時器就能測試。
"""
import copy
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Dict, Optional
import logging

from core.commands import (
    Disconnect,
    ExecuteTrade,
    Forfeit,
    Join,
    RequestLoan,
    RollDice,
    SetReady,
    Start,
    TimerFired,
    UpdateSettings,
)
from core.events import DiceRolled, MarketUpdated, StateSnapshot
from core.exceptions import (
    GameInProgress,
    InvalidPhase,
    LoanNotAvailable,
    NotHost,
    NotYourTurn,
    PlayerNotFound,
    RoomFull,
    RuleViolation,
)
from core.state_machine import (
    ACTIVE_PHASES,
    READY_GATED_PHASES,
    TRADING_PHASES,
    PhaseMachine,
    Transition,
)
from models import (
    ConnectionStatus,
    Direction,
    Phase,
    Player,
    RoomConfig,
    RoomState,
    StockStatus,
    TimerKind,
    TradeType,
    create_market,
)
from services import ledger_service, market_service, turn_service
from services.dice_service import DiceRoller
from services.naming_service import generate_display_name

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = ("initial_cash", "max_rounds", "trading_interval", "enable_loans")

_default_dice = DiceRoller()


def new_room_state(room_id: str, config: Optional[RoomConfig] = None) -> RoomState:
    """建立一個在 LOBBY 等待玩家的新房間"""
    config = config or RoomConfig()
    state = RoomState(room_id=room_id, settings=replace(config.default_settings))
    state.ticker_log.append(f"Game created in room {room_id}. Waiting for players...")
    return state


def apply_command(
    state: RoomState,
    command,
    config: Optional[RoomConfig] = None,
    dice: Optional[DiceRoller] = None,
) -> Transition:
    """
    對房間套用一個指令

    參數：
        state: 目前的房間狀態（不會被修改）
        command: core.commands 裡的任一指令
        config: RoomConfig（預設值即正式規則）
        dice: DiceRoller（測試可注入固定結果）

    返回：
        Transition（新狀態、事件、回傳值）；被忽略的過期計時器回傳原狀態與空事件

    異常：
        CommandRejected 的子類別：指令被拒絕，狀態不變
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"Unknown command {command!r}")

    transition = Transition(state=copy.deepcopy(state))
    changed = handler(transition, command, config or RoomConfig(), dice or _default_dice)
    if changed is False:
        return Transition(state=state)

    transition.emit(StateSnapshot(transition.state))
    return transition


# ============ helpers ============

def _get_player(state: RoomState, player_id: str) -> Player:
    player = state.players.get(player_id)
    if player is None:
        raise PlayerNotFound(player_id)
    return player


def _require_host(state: RoomState, player_id: str) -> None:
    _get_player(state, player_id)
    if state.host.id != player_id:
        raise NotHost(f"Player {player_id} is not the host of room {state.room_id}")


def _enter_rolling(transition: Transition, config: RoomConfig) -> None:
    PhaseMachine.enter_phase(transition, Phase.ROLLING, config)
    current = transition.state.current_player
    if current is not None:
        transition.log(f"It's {current.name}'s turn to roll.")


def _finish_turn(transition: Transition, config: RoomConfig) -> None:
    """擲骰（或拆股 / 破產）結算完，輪到下一位"""
    next_phase = turn_service.advance_turn(transition.state)
    if next_phase == Phase.END_GAME:
        PhaseMachine.enter_phase(transition, Phase.END_GAME, config)
        transition.log("Game Over!")
    elif next_phase == Phase.OPEN_MARKET:
        transition.log("Market is open for trading!")
        PhaseMachine.enter_phase(transition, Phase.OPEN_MARKET, config)
    else:
        _enter_rolling(transition, config)


def _check_all_ready(transition: Transition, config: RoomConfig) -> None:
    state = transition.state
    online = [p for p in state.players.values() if p.is_online]
    if not online or not all(p.is_ready for p in online):
        return

    if state.phase == Phase.INITIAL_BUY_IN:
        transition.log("Initial buys locked in. Rolling phase starting.")
        _enter_rolling(transition, config)
    elif state.phase == Phase.OPEN_MARKET:
        transition.log("All players ready. Trading closed early.")
        _enter_rolling(transition, config)


def _reset_round_state(state: RoomState) -> None:
    state.market = create_market()
    state.turn_index = 0
    state.completed_rounds = 0
    state.market_timer = 0
    state.last_roll = None


# ============ player commands ============

def _join(transition: Transition, command: Join, config: RoomConfig, dice: DiceRoller):
    state = transition.state
    player = state.players.get(command.player_id)

    if player is not None:
        was_disconnected = not player.is_online
        player.connection_status = ConnectionStatus.ONLINE
        player.name = command.name or player.name
        player.avatar = command.avatar
        if was_disconnected:
            transition.log(f"{player.name} reconnected.")
        transition.result = player
        return

    if state.phase not in (Phase.LOBBY, Phase.END_GAME):
        raise GameInProgress(f"Room {state.room_id} is in {state.phase.value}")
    if len(state.players) >= config.max_players:
        raise RoomFull(f"Room {state.room_id} already has {len(state.players)} players")

    player = Player(
        id=command.player_id,
        name=command.name or generate_display_name(state),
        avatar=command.avatar,
        cash=state.settings.initial_cash,
    )
    state.players[player.id] = player
    transition.log(f"{player.name} joined the game.")
    transition.result = player


def _disconnect(transition: Transition, command: Disconnect, config: RoomConfig, dice: DiceRoller):
    state = transition.state
    player = _get_player(state, command.player_id)
    if not player.is_online:
        return False

    player.connection_status = ConnectionStatus.DISCONNECTED
    transition.log(f"{player.name} disconnected.")
    if state.phase in READY_GATED_PHASES:
        _check_all_ready(transition, config)


def _start(transition: Transition, command: Start, config: RoomConfig, dice: DiceRoller):
    state = transition.state
    _require_host(state, command.player_id)
    if state.phase not in (Phase.LOBBY, Phase.END_GAME):
        raise InvalidPhase(f"Cannot start room {state.room_id} during {state.phase.value}")

    # 保留玩家與設定，其他全部重置
    for player in state.players.values():
        ledger_service.reset_assets(player, state.settings.initial_cash)
    _reset_round_state(state)
    state.ticker_log = []

    PhaseMachine.enter_phase(transition, Phase.INITIAL_BUY_IN, config)
    transition.log("Game Started! Initial Buy-in Phase.")


def _update_settings(transition: Transition, command: UpdateSettings, config: RoomConfig, dice: DiceRoller):
    state = transition.state
    _require_host(state, command.player_id)
    if state.phase != Phase.LOBBY:
        raise InvalidPhase(f"Settings are locked during {state.phase.value}")

    unknown = set(command.changes) - set(SETTINGS_FIELDS)
    if unknown:
        raise RuleViolation(f"Unknown settings: {sorted(unknown)}")

    changes = dict(command.changes)
    if "initial_cash" in changes:
        changes["initial_cash"] = Decimal(str(changes["initial_cash"]))
    state.settings = replace(state.settings, **changes)
    logger.info(f"Room {state.room_id} settings updated: {command.changes}")


def _set_ready(transition: Transition, command: SetReady, config: RoomConfig, dice: DiceRoller):
    state = transition.state
    player = _get_player(state, command.player_id)
    player.is_ready = command.ready
    if command.ready and state.phase in READY_GATED_PHASES:
        _check_all_ready(transition, config)


def _roll_dice(transition: Transition, command: RollDice, config: RoomConfig, dice: DiceRoller):
    state = transition.state
    player = _get_player(state, command.player_id)
    if state.phase != Phase.ROLLING:
        raise InvalidPhase(f"Cannot roll during {state.phase.value}")

    current = state.current_player
    if current is None or current.id != player.id:
        raise NotYourTurn(
            f"Unauthorized ROLL_DICE attempt by {player.id} in room {state.room_id}"
        )

    roll = dice.roll()
    state.last_roll = roll
    PhaseMachine.enter_phase(transition, Phase.RESOLVING_ROLL, config)
    transition.emit(DiceRolled(roll=roll, player_name=player.name))
    transition.log(
        f"{player.name} rolled {roll.symbol} {roll.direction.value} {roll.magnitude}."
    )
    PhaseMachine.schedule(transition, TimerKind.ROLL_SETTLE, config.roll_settle_delay)


def _execute_trade(transition: Transition, command: ExecuteTrade, config: RoomConfig, dice: DiceRoller):
    state = transition.state
    player = _get_player(state, command.player_id)
    if state.phase not in TRADING_PHASES:
        raise InvalidPhase(f"Trading is closed during {state.phase.value}")

    instrument = state.market.get(command.symbol)
    if instrument is None:
        raise RuleViolation(f"Unknown instrument {command.symbol}")

    receipt = ledger_service.execute_trade(
        player, instrument, command.trade_type, command.quantity
    )
    if receipt.trade_type == TradeType.BUY:
        transition.log(
            f"{player.name} bought {receipt.quantity} {receipt.symbol} @ ${receipt.price:.2f}"
        )
    else:
        sign = "+" if receipt.realized_pnl >= 0 else "-"
        transition.log(
            f"{player.name} sold {receipt.quantity} {receipt.symbol} @ ${receipt.price:.2f} "
            f"(P/L {sign}${abs(receipt.realized_pnl):.2f}, {receipt.realized_pct:+.1f}%)"
        )
    transition.result = receipt


def _request_loan(transition: Transition, command: RequestLoan, config: RoomConfig, dice: DiceRoller):
    state = transition.state
    player = _get_player(state, command.player_id)
    if not state.settings.enable_loans:
        raise LoanNotAvailable(f"Loans are disabled in room {state.room_id}")
    if player.has_used_loan:
        raise LoanNotAvailable(f"{player.name} has already used the emergency loan")

    if not ledger_service.is_truly_bankrupt(player, state.market):
        # 不算錯誤：寫進 ticker 讓大家看到，但不給錢
        transition.log(f"{player.name} requested a loan but is not bankrupt yet.")
        transition.result = False
        return

    ledger_service.grant_loan(player, config.loan_amount)
    transition.log(f"{player.name} took an emergency loan of ${config.loan_amount:,.2f}")
    transition.result = True


def _forfeit(transition: Transition, command: Forfeit, config: RoomConfig, dice: DiceRoller):
    state = transition.state
    player = _get_player(state, command.player_id)
    if state.phase not in ACTIVE_PHASES:
        raise InvalidPhase(f"Cannot forfeit during {state.phase.value}")

    removed_index = list(state.players).index(player.id)
    del state.players[player.id]
    transition.log(f"{player.name} forfeited the game.")

    if not state.players:
        _reset_round_state(state)
        PhaseMachine.enter_phase(transition, Phase.LOBBY, config)
        transition.log("All players left. Room reset to lobby.")
        return

    if turn_service.correct_index_on_removal(state, removed_index):
        _finish_turn(transition, config)
    elif state.phase in READY_GATED_PHASES:
        _check_all_ready(transition, config)


# ============ timers ============

def _timer_fired(transition: Transition, command: TimerFired, config: RoomConfig, dice: DiceRoller):
    state = transition.state
    if not PhaseMachine.is_current_timer(state, command.token):
        logger.debug(f"Room {state.room_id}: ignoring stale timer {command.token}")
        return False

    kind = state.timer.kind
    state.timer = None
    if kind == TimerKind.ROLL_SETTLE:
        _settle_roll(transition, config)
    elif kind == TimerKind.STOCK_EVENT:
        _resolve_stock_events(transition, config)
    elif kind == TimerKind.MARKET_TICK:
        _tick_market(transition, config)


def _settle_roll(transition: Transition, config: RoomConfig) -> None:
    state = transition.state
    roll = state.last_roll
    instrument = state.market[roll.symbol]

    if roll.direction in (Direction.UP, Direction.DOWN):
        value = market_service.apply_price_move(instrument, roll.direction, roll.amount)
        verb = "rose" if roll.direction == Direction.UP else "fell"
        transition.log(f"{roll.symbol} {verb} ${roll.amount:.2f} to ${value:.2f}")
        transition.emit(MarketUpdated.of(state.market))

        if instrument.status != StockStatus.NORMAL:
            PhaseMachine.enter_phase(transition, Phase.STOCK_EVENT_PHASE, config)
            PhaseMachine.schedule(transition, TimerKind.STOCK_EVENT, config.stock_event_delay)
            return
    else:
        PhaseMachine.enter_phase(transition, Phase.PAYING_DIVIDENDS, config)
        if market_service.dividend_payable(instrument):
            payouts = market_service.pay_dividend(state.players.values(), roll.symbol, roll.amount)
            for player, payout in payouts:
                transition.log(
                    f"{player.name} earned ${payout:.2f} in dividends from {roll.symbol}."
                )
            if not payouts:
                transition.log(f"{roll.symbol} paid a dividend, but nobody holds it.")
        else:
            transition.log(
                f"{roll.symbol} is at ${instrument.current_value:.2f}. No dividend paid."
            )

    _finish_turn(transition, config)


def _resolve_stock_events(transition: Transition, config: RoomConfig) -> None:
    state = transition.state
    resolved = market_service.resolve_structural_events(state.market, state.seated)
    for symbol, status in resolved:
        if status == StockStatus.BANKRUPT:
            transition.log(f"{symbol} IS BANKRUPT! All shares lost. Price reset to $1.00.")
        else:
            transition.log(f"{symbol} SPLIT! Shares doubled. Price reset to $1.00.")

    transition.emit(MarketUpdated.of(state.market))
    _finish_turn(transition, config)


def _tick_market(transition: Transition, config: RoomConfig) -> None:
    state = transition.state
    state.market_timer = max(state.market_timer - 1, 0)
    if state.market_timer > 0:
        PhaseMachine.schedule(transition, TimerKind.MARKET_TICK, config.market_tick)
        return

    transition.log("Trading window closed.")
    _enter_rolling(transition, config)


_HANDLERS: Dict[type, Callable] = {
    Join: _join,
    Disconnect: _disconnect,
    Start: _start,
    UpdateSettings: _update_settings,
    SetReady: _set_ready,
    RollDice: _roll_dice,
    ExecuteTrade: _execute_trade,
    RequestLoan: _request_loan,
    Forfeit: _forfeit,
    TimerFired: _timer_fired,
}
