"""Selectors for the planning kernel (read side)."""

from planning_kernel.selectors.catalog_selector import CatalogSelector
from planning_kernel.selectors.grid_selector import GridSelector

__all__ = [
    "CatalogSelector",
    "GridSelector",
]
