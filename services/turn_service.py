"""
回合服務：輪到誰擲骰、回合數、何時開市、何時結束

輪序固定為玩家入座順序。每次擲骰結算後 turn_index + 1，
繞回第一位玩家時 completed_rounds + 1。
"""
from models import Phase, RoomState


def advance_turn(state: RoomState) -> Phase:
    """
    前進到下一位玩家，並決定下一個階段（不負責進入階段）

    規則：
    - completed_rounds >= max_rounds: END_GAME
    - 剛好在回合邊界（turn_index == 0）且 completed_rounds 是
      trading_interval 的正整數倍: OPEN_MARKET
    - 其他: ROLLING

    返回：
        下一個 Phase
    """
    seated = len(state.players)
    state.turn_index += 1
    if state.turn_index >= seated:
        state.turn_index = 0
        state.completed_rounds += 1

    if state.completed_rounds >= state.settings.max_rounds:
        return Phase.END_GAME

    if state.turn_index == 0 and is_market_round(state):
        return Phase.OPEN_MARKET
    return Phase.ROLLING


def is_market_round(state: RoomState) -> bool:
    rounds = state.completed_rounds
    return rounds > 0 and rounds % state.settings.trading_interval == 0


def correct_index_on_removal(state: RoomState, removed_index: int) -> bool:
    """
    玩家離開後修正 turn_index（呼叫前玩家已從 state.players 移除）

    規則：
    - 結算中（RESOLVING_ROLL / STOCK_EVENT_PHASE）：稍後會自動前進一格，
      所以移除位置 <= turn_index 時先退一格
    - ROLLING：移除位置 < turn_index 時退一格；移除的是目前擲骰者時，
      也退一格並立即前進（等同這位玩家的回合結束）
    - 其他階段：移除位置 < turn_index 時退一格，超出範圍則回到 0

    返回：
        True 表示呼叫者必須立即執行 advance_turn
    """
    index = state.turn_index
    if state.phase in (Phase.RESOLVING_ROLL, Phase.STOCK_EVENT_PHASE, Phase.PAYING_DIVIDENDS):
        if removed_index <= index:
            state.turn_index = index - 1
        return False

    if state.phase == Phase.ROLLING:
        if removed_index < index:
            state.turn_index = index - 1
            return False
        if removed_index == index:
            state.turn_index = index - 1
            return True
        return False

    if removed_index < index:
        state.turn_index = index - 1
    if state.turn_index >= len(state.players):
        state.turn_index = 0
    return False
