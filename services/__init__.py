"""
服務層

這個 package 包含純計算邏輯，不碰資料庫 transaction：
- TallyService：計票與排名
- RevealPhaseService：揭曉階段判斷
- NamingService：短代碼字元產生
"""
