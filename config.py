from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings

from models import GameSettings, RoomConfig


class Settings(BaseSettings):
    # 新房間的預設遊戲設定（Host 可在 LOBBY 修改）
    default_initial_cash: int = 5000
    default_max_rounds: int = 20
    default_trading_interval: int = 1
    default_enable_loans: bool = True

    max_players: int = 6
    loan_amount: int = 1000
    loan_repayment: int = 1500

    # 時間單位：秒
    roll_settle_delay: float = 5.5
    stock_event_delay: float = 2.0
    market_duration: int = 60
    market_tick: float = 1.0

    room_idle_timeout: float = 30 * 60
    room_sweep_interval: float = 60

    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_prefix = "STOCK_TICKER_"


@lru_cache()
def get_settings():
    return Settings()


def get_room_config(settings: Optional[Settings] = None) -> RoomConfig:
    """
    把環境設定轉成 RoomEngine 使用的 RoomConfig

    參數：
        settings: Settings（預設使用 get_settings()）

    返回：
        RoomConfig
    """
    settings = settings or get_settings()
    return RoomConfig(
        default_settings=GameSettings(
            initial_cash=Decimal(settings.default_initial_cash),
            max_rounds=settings.default_max_rounds,
            trading_interval=settings.default_trading_interval,
            enable_loans=settings.default_enable_loans,
        ),
        max_players=settings.max_players,
        loan_amount=Decimal(settings.loan_amount),
        loan_repayment=Decimal(settings.loan_repayment),
        roll_settle_delay=settings.roll_settle_delay,
        stock_event_delay=settings.stock_event_delay,
        market_duration=settings.market_duration,
        market_tick=settings.market_tick,
    )
