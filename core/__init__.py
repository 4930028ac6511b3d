"""
核心業務邏輯層

這個 package 包含所有會讀寫資料庫的業務邏輯：
- ShortCodeResolver：短代碼的產生、保留與解析
- Scope：管理員授權範圍
- RevealStateMachine：揭曉階段狀態機
- Manager：組織、管理員、活動、投票的生命週期
- Locks：並發控制工具
"""
