"""
Kit Module

Operator-facing layer of the promotion kit.

This module provides:
- YAML configuration with layered defaults
- The MKT error taxonomy
- Artifact writing with model validation
- Markdown / CSV renderers and optional plots
- The pipeline runner and the typer CLI
"""

__version__ = "0.1.0"
