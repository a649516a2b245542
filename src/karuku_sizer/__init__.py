"""画像のリサイズと目標サイズ圧縮のための寸法・品質決定エンジン。"""

__version__ = "0.1.0"
