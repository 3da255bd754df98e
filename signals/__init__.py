"""
Signals Module

External collaborators for discovery and fact collection.

This module provides:
- The SearchProvider interface and an offline fake
- A requests-backed GitHub REST / Search provider
- One-shot retry for transient failures
- A day-keyed file cache for search results
- Best-effort GitHub fact collection per tool
"""

__version__ = "0.1.0"
