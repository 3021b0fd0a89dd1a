"""
自定義異常類別

集中管理所有業務邏輯異常，方便 RoomEngine 與 API 層統一處理

分類：
- AuthorizationError：不是 Host、不是你的回合（只回報給發送者）
- RuleViolation：階段錯誤、現金或持股不足、貸款條件不符
- RoomNotAcceptingPlayers：房間已滿或遊戲進行中
"""


class StockTickerException(Exception):
    """所有遊戲異常的基類"""
    pass


# ============ Room 相關異常 ============

class RoomNotFound(StockTickerException):
    """房間不存在"""
    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


# ============ 狀態轉換異常 ============

class InvalidStateTransition(StockTickerException):
    """非法的階段轉換（程式錯誤，不是玩家操作錯誤）"""
    pass


# ============ 指令被拒絕 ============

class CommandRejected(StockTickerException):
    """指令被拒絕：狀態不變，也不廣播"""
    code = "rejected"


class PlayerNotFound(CommandRejected):
    """玩家不在房間內"""
    code = "player_not_found"

    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class RoomNotAcceptingPlayers(CommandRejected):
    """房間不接受新玩家加入"""
    code = "room_not_joinable"


class RoomFull(RoomNotAcceptingPlayers):
    """房間人數已達上限"""
    code = "room_full"


class GameInProgress(RoomNotAcceptingPlayers):
    """遊戲進行中，新玩家不能加入"""
    code = "game_in_progress"


# ============ 授權異常 ============

class AuthorizationError(CommandRejected):
    code = "unauthorized"


class NotHost(AuthorizationError):
    """只有 Host 可以開始遊戲或修改設定"""
    code = "not_host"


class NotYourTurn(AuthorizationError):
    """不是這位玩家的回合"""
    code = "not_your_turn"


# ============ 規則異常 ============

class RuleViolation(CommandRejected):
    code = "rule_violation"


class InvalidPhase(RuleViolation):
    """目前階段不允許這個指令"""
    code = "invalid_phase"


class InvalidQuantity(RuleViolation):
    code = "invalid_quantity"


class InstrumentNotTradable(RuleViolation):
    """股價 <= 0，暫停交易"""
    code = "instrument_not_tradable"


class InsufficientCash(RuleViolation):
    code = "insufficient_cash"


class InsufficientShares(RuleViolation):
    code = "insufficient_shares"


class LoanNotAvailable(RuleViolation):
    """貸款未開放或已經用過"""
    code = "loan_not_available"
