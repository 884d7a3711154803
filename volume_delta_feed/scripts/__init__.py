"""CLI scripts around the volume ingestion API and DuckDB store.

Scripts:
- post_sample_bars: POST generated live bars to a running /api/volume endpoint
- export_volume_data_to_csv: Export volume_data rows from DuckDB to CSV

Usage:
    python -m volume_delta_feed.scripts.post_sample_bars --help
    python -m volume_delta_feed.scripts.export_volume_data_to_csv --help
"""

__all__ = [
    "post_sample_bars",
    "export_volume_data_to_csv",
]
