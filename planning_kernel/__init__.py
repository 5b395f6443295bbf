"""
Planning Kernel

Persistence and consistency core for a merchandise financial planning grid:
- Hierarchy, calendar, measure and version catalogs
- Cell fact table with upsert semantics
- Top-down spreading, bottom-up rollups and derived-measure formulas
"""

__version__ = "0.1.0"
