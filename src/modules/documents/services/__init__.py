from .cleanup import purge_stale_temporary_documents
from .deletion import DeletionOrchestrator, DeletionResult
from .rotation_service import RotationService

__all__ = ['purge_stale_temporary_documents', 'DeletionOrchestrator', 'DeletionResult', 'RotationService']
