from typing import Optional


class ServiceError(Exception):
    """Base de los errores que el servicio reporta al cliente."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Entrada con forma inválida; se rechaza antes de cualquier efecto."""
    status_code = 400


class SizeLimitError(ValidationError):
    status_code = 413


class TransportError(ServiceError):
    """Fallo de red o rechazo del servidor durante un upload."""
    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class InvalidSourceError(ServiceError):
    status_code = 422

    def __init__(self, path: str, reason: str = "no es un PDF válido"):
        super().__init__(f"El archivo {path} {reason}")
        self.path = path


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class FatalError(ServiceError):
    """Fallo en el paso final e irreversible de una operación de varios pasos."""
    status_code = 500


class DeletionAbortedError(ServiceError):
    """
    Un dependiente crítico no se pudo eliminar; el documento sigue intacto.

    Steps already committed stay committed, and the request can be retried.
    """
    status_code = 503

    def __init__(self, message: str, step: str):
        super().__init__(message)
        self.step = step


class PartialFailureWarning(UserWarning):
    """Fallo de un paso no crítico; se acumula junto a un resultado exitoso."""


class StorageError(ServiceError):
    status_code = 500


class BlobNotFoundError(StorageError):
    status_code = 404


class BlobExistsError(StorageError):
    status_code = 409
