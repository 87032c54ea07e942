from .models import ShareResult, ShareState
from .orchestrator import SharingOrchestrator

__all__ = ["ShareResult", "ShareState", "SharingOrchestrator"]
