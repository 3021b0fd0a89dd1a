"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理所有階段轉換
- Transitions：純函式 (state, command) -> (state, events)
- RoomEngine：單一寫入者的房間 actor（序列化指令、管理計時器）
- Manager：管理所有房間的 registry
"""
