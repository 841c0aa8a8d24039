from .json import json_dumps, json_loads
from .timestamps import epoch_to_iso, monotonic, now_iso, now_ms

__all__ = ["json_dumps", "json_loads", "epoch_to_iso", "monotonic", "now_iso", "now_ms"]
