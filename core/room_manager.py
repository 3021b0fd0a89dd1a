"""
Room Manager：管理所有房間的 registry

職責：
1. 第一次有人加入某個房間代碼時建立 RoomEngine
2. 查詢 / 移除房間
3. 清除閒置太久的房間

存取規則（single writer per room）：
- registry 本身只在 event loop 的 thread 上使用，dict 操作之間沒有 await
- 房間狀態只能透過 RoomEngine.dispatch 修改，每個房間各自排隊
- 房間之間沒有共享的可變資料，也沒有跨房間的鎖
"""
import time
from typing import Dict, Iterator, List, Optional
import logging

from core.events import EventSink
from core.exceptions import RoomNotFound
from core.room_engine import RoomEngine
from models import RoomConfig
from services.dice_service import DiceRoller
from services.naming_service import generate_room_code

logger = logging.getLogger(__name__)


class RoomRegistry:
    """room_id -> RoomEngine"""

    def __init__(
        self,
        sink: Optional[EventSink] = None,
        config: Optional[RoomConfig] = None,
        dice: Optional[DiceRoller] = None,
    ):
        self._rooms: Dict[str, RoomEngine] = {}
        self._sink = sink
        self._config = config or RoomConfig()
        self._dice = dice

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __iter__(self) -> Iterator[RoomEngine]:
        return iter(list(self._rooms.values()))

    def get_or_create(self, room_id: str) -> RoomEngine:
        """
        取得房間，不存在就建立

        參數：
            room_id: 房間代碼

        返回：
            RoomEngine
        """
        room = self._rooms.get(room_id)
        if room is None:
            room = RoomEngine(room_id, sink=self._sink, config=self._config, dice=self._dice)
            self._rooms[room_id] = room
            logger.info(f"Created room {room_id}")
        return room

    def get(self, room_id: str) -> RoomEngine:
        """
        異常：
            RoomNotFound: 房間不存在
        """
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFound(room_id)
        return room

    def new_room_code(self) -> str:
        """
        生成一個沒人用過的房間代碼

        注意：
            碰撞機率極低（26^6），但仍會檢查唯一性
        """
        code = generate_room_code()
        while code in self._rooms:
            logger.warning(f"Room code collision detected, regenerating: {code}")
            code = generate_room_code()
        return code

    async def remove(self, room_id: str) -> None:
        room = self._rooms.pop(room_id, None)
        if room is not None:
            await room.close()
            logger.info(f"Removed room {room_id}")

    async def prune_idle(self, max_idle: float, now: Optional[float] = None) -> List[str]:
        """
        移除超過 max_idle 秒沒有任何玩家指令的房間

        返回：
            被移除的 room_id 列表
        """
        now = time.monotonic() if now is None else now
        stale = [
            room_id for room_id, room in self._rooms.items()
            if now - room.last_activity_at >= max_idle
        ]
        for room_id in stale:
            await self.remove(room_id)
        if stale:
            logger.info(f"Pruned {len(stale)} idle room(s): {stale}")
        return stale

    async def close(self) -> None:
        for room_id in list(self._rooms):
            await self.remove(room_id)
