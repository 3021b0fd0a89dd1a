"""
FastAPI dependencies

整個 process 共用一個 RoomRegistry，事件交給 WebSocket 的 ConnectionManager 廣播
"""
from functools import lru_cache

from config import get_room_config
from core.room_manager import RoomRegistry


@lru_cache()
def get_registry() -> RoomRegistry:
    # 延遲 import：api.websocket 本身依賴這個模組
    from api.websocket import manager

    return RoomRegistry(sink=manager, config=get_room_config())
