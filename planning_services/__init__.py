"""
Planning services -- orchestration over the kernel services and engines.

Usage:
    from planning_services import CellEditOrchestrator, EditStage
"""

from planning_services._edit_types import CellEditRequest, CellEditResult, EditStage
from planning_services.cell_edit_orchestrator import CellEditOrchestrator

__all__ = [
    "CellEditOrchestrator",
    "CellEditRequest",
    "CellEditResult",
    "EditStage",
]
