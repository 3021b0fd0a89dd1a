"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- DiceService：擲骰
- MarketService：價格變動、股利、拆股與破產
- LedgerService：買賣、平均成本、貸款、淨值
- TurnService：輪序與回合數
- HistoryService：排行榜
- NamingService：名稱生成邏輯
"""
