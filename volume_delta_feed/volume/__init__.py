"""Futures volume delta feed.

Implements bar validation, DuckDB storage, the ingestion API and delta statistics.
Candle and heatmap charts are placeholders on the dashboard.
"""

__all__ = [
    "api",
    "config",
    "db",
    "stats",
    "validation",
    "widget",
]
