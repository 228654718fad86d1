from .auto_delete import start_cleanup_job

__all__ = ['start_cleanup_job']
