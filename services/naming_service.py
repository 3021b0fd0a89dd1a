"""
命名服務：生成 Room Code 和預設的玩家顯示名稱

純計算邏輯，不涉及狀態轉換
"""
import random
import string

from models import RoomState


def generate_room_code() -> str:
    """
    生成隨機的 6 位大寫字母房間代碼

    範例：ABCDEF, XYZABC

    注意：
    - 不檢查唯一性（由呼叫者負責）
    - 26^6 = 308,915,776 種可能，碰撞機率極低
    """
    return ''.join(random.choices(string.ascii_uppercase, k=6))


def generate_display_name(state: RoomState) -> str:
    """
    玩家沒有提供名稱時使用的預設名稱

    格式：「Player N」，N 為入座順序（從 1 開始）

    範例：
        第 1 位玩家: Player 1
        第 3 位玩家: Player 3
    """
    return f"Player {len(state.players) + 1}"
