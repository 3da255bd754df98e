"""
Store Module

The JSON data directory the kit reads from and writes to.

This module provides:
- Tolerant loads that degrade to defaults with a warning
- Required loads that raise MKT.DATA errors
- JSONL and per-file directory readers
- Deterministic JSON writes
"""

__version__ = "0.1.0"
