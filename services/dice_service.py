"""
骰子服務：三顆骰子（股票、方向、金額）

使用 secrets.randbelow（作業系統的 CSPRNG），每一面機率完全均等，
沒有取模偏差。
"""
import secrets
from typing import Callable, Sequence, TypeVar

from models import SYMBOLS, Direction, RollResult

T = TypeVar("T")

STOCK_FACES = SYMBOLS
DIRECTION_FACES = (
    Direction.UP, Direction.DOWN, Direction.DIVIDEND,
    Direction.UP, Direction.DOWN, Direction.DIVIDEND,
)
AMOUNT_FACES = (5, 10, 20, 5, 10, 20)


class DiceRoller:
    """
    擲骰器

    參數：
        randbelow: 回傳 [0, n) 均勻整數的函式（測試可注入固定序列）
    """

    def __init__(self, randbelow: Callable[[int], int] = secrets.randbelow):
        self._randbelow = randbelow

    def roll_die(self, faces: Sequence[T]) -> T:
        return faces[self._randbelow(len(faces))]

    def roll(self) -> RollResult:
        return RollResult(
            symbol=self.roll_die(STOCK_FACES),
            direction=self.roll_die(DIRECTION_FACES),
            magnitude=self.roll_die(AMOUNT_FACES),
        )
