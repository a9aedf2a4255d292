"""Utility modules for opsalert."""
from utils.logger import setup_logging
from utils.formatters import format_duration, format_timestamp, format_value, format_pct, time_ago
