"""
遊戲資料模型

全部都是記憶體內的 dataclass（不做持久化）：
- RoomState：一個房間的完整權威狀態
- Instrument：單一股票的價格、歷史與結構狀態
- Player：玩家現金、持股、平均成本
- GameSettings / RoomConfig：遊戲設定與引擎參數
"""
import enum
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional


CENT = Decimal("0.01")
INITIAL_STOCK_PRICE = Decimal("1.00")
SPLIT_THRESHOLD = Decimal("2.00")
BANKRUPT_THRESHOLD = Decimal("0.00")
DIVIDEND_THRESHOLD = Decimal("1.00")

HISTORY_CAPACITY = 50
TICKER_LOG_CAPACITY = 50

SYMBOLS = ("Gold", "Silver", "Oil", "Industrial", "Bonds", "Grain")


def round_money(value: Decimal) -> Decimal:
    """四捨五入到小數點後兩位（ROUND_HALF_UP）"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class Phase(str, enum.Enum):
    LOBBY = "LOBBY"
    INITIAL_BUY_IN = "INITIAL_BUY_IN"
    ROLLING = "ROLLING"
    RESOLVING_ROLL = "RESOLVING_ROLL"
    PAYING_DIVIDENDS = "PAYING_DIVIDENDS"
    STOCK_EVENT_PHASE = "STOCK_EVENT_PHASE"
    OPEN_MARKET = "OPEN_MARKET"
    END_GAME = "END_GAME"


class StockStatus(str, enum.Enum):
    NORMAL = "NORMAL"
    PENDING_SPLIT = "PENDING_SPLIT"
    BANKRUPT = "BANKRUPT"


class Direction(str, enum.Enum):
    UP = "UP"
    DOWN = "DOWN"
    DIVIDEND = "DIVIDEND"


class TradeType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class ConnectionStatus(str, enum.Enum):
    ONLINE = "ONLINE"
    DISCONNECTED = "DISCONNECTED"


class TimerKind(str, enum.Enum):
    ROLL_SETTLE = "ROLL_SETTLE"
    STOCK_EVENT = "STOCK_EVENT"
    MARKET_TICK = "MARKET_TICK"


@dataclass
class GameSettings:
    initial_cash: Decimal = Decimal("5000")
    max_rounds: int = 20
    trading_interval: int = 1
    enable_loans: bool = True


@dataclass(frozen=True)
class RoomConfig:
    """引擎層參數（來自 config.Settings，測試可直接建構）"""
    default_settings: GameSettings = field(default_factory=GameSettings)
    max_players: int = 6
    loan_amount: Decimal = Decimal("1000")
    loan_repayment: Decimal = Decimal("1500")
    roll_settle_delay: float = 5.5
    stock_event_delay: float = 2.0
    market_duration: int = 60
    market_tick: float = 1.0


@dataclass
class Instrument:
    symbol: str
    current_value: Decimal = INITIAL_STOCK_PRICE
    history: List[Decimal] = field(default_factory=lambda: [INITIAL_STOCK_PRICE])
    status: StockStatus = StockStatus.NORMAL


@dataclass
class Player:
    id: str
    name: str
    cash: Decimal
    avatar: str = ""
    holdings: Dict[str, int] = field(default_factory=lambda: {s: 0 for s in SYMBOLS})
    avg_cost: Dict[str, Decimal] = field(
        default_factory=lambda: {s: Decimal("0") for s in SYMBOLS}
    )
    has_used_loan: bool = False
    is_ready: bool = False
    connection_status: ConnectionStatus = ConnectionStatus.ONLINE

    @property
    def is_online(self) -> bool:
        return self.connection_status == ConnectionStatus.ONLINE


@dataclass(frozen=True)
class RollResult:
    symbol: str
    direction: Direction
    magnitude: int  # cents

    @property
    def amount(self) -> Decimal:
        return Decimal(self.magnitude) / 100


@dataclass(frozen=True)
class TimerSpec:
    """房間唯一的待執行計時器；token 不符即為過期"""
    kind: TimerKind
    delay: float
    token: int
    generation: int


def create_market() -> Dict[str, Instrument]:
    return {symbol: Instrument(symbol=symbol) for symbol in SYMBOLS}


@dataclass
class RoomState:
    room_id: str
    settings: GameSettings = field(default_factory=GameSettings)
    phase: Phase = Phase.LOBBY
    market: Dict[str, Instrument] = field(default_factory=create_market)
    players: Dict[str, Player] = field(default_factory=dict)  # 插入順序 = 座位順序
    turn_index: int = 0
    completed_rounds: int = 0
    market_timer: int = 0
    phase_generation: int = 0
    timer: Optional[TimerSpec] = None
    timer_seq: int = 0
    ticker_log: List[str] = field(default_factory=list)
    last_roll: Optional[RollResult] = None

    @property
    def seated(self) -> List[Player]:
        return list(self.players.values())

    @property
    def host(self) -> Optional[Player]:
        return next(iter(self.players.values()), None)

    @property
    def current_player(self) -> Optional[Player]:
        seated = self.seated
        if 0 <= self.turn_index < len(seated):
            return seated[self.turn_index]
        return None
