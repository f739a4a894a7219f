"""StageDo - staged checklist core and MCP server support."""

from .errors import StageDoError
from .models import ChecklistItem, ListDocument, ListRecord, ParkedItem, StageSnapshot
from .workflow import WorkflowManager, lookup_list_root, register_list_root
from .workspace import Workspace

__all__ = [
    "ChecklistItem",
    "ListDocument",
    "ListRecord",
    "ParkedItem",
    "StageDoError",
    "StageSnapshot",
    "WorkflowManager",
    "Workspace",
    "lookup_list_root",
    "register_list_root",
]
