"""Volume Delta Feed - volume bar ingestion and delta statistics for futures symbols.

Provides:
- HTTP ingestion endpoint with strict volume bar validation
- DuckDB persistence for the volume_data table
- Volume delta statistics with live/playback detection
- CLI scripts for posting sample bars and exporting data
"""

__version__ = "0.1.0"

# Expose main submodules
from . import volume
from . import scripts

__all__ = ["volume", "scripts", "__version__"]
