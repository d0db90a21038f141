"""Domain errors raised by the storage and file lifecycle code.

Routers never catch these; the handlers registered in ``main`` translate each
family to its HTTP status.
"""
from typing import Any, Dict, List, Optional


class FileStorageError(Exception):
    status_code = 500
    message = "Ocurrió un error en el servidor."

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(FileStorageError):
    status_code = 400
    message = "Error de validación."

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class MissingMetadataError(ValidationError):
    def __init__(self, missing_fields: List[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Faltan metadatos requeridos: {', '.join(self.missing_fields)}.",
            errors=[{"field": field, "msg": f"{field} es requerido."} for field in self.missing_fields],
        )


class InvalidMetadataJsonError(ValidationError):
    def __init__(self, field: str = "metadatosAdicionales"):
        msg = f"{field} debe ser un string JSON válido."
        super().__init__(msg, errors=[{"field": field, "msg": msg}])


class InvalidFilterError(ValidationError):
    def __init__(self, field: str, msg: str):
        super().__init__(msg, errors=[{"field": field, "msg": msg}])


class NotFoundError(FileStorageError):
    status_code = 404
    message = "Archivo no encontrado."


class FileRecordNotFoundError(NotFoundError):
    def __init__(self, file_id: int):
        self.file_id = file_id
        super().__init__("Archivo no encontrado.")


class PhysicalFileMissingError(NotFoundError):
    def __init__(self, file_id: int, path: str):
        self.file_id = file_id
        self.path = path
        super().__init__("Archivo no encontrado en el almacenamiento físico.")


class DependencyNotFoundError(FileStorageError):
    status_code = 400


class ServiceTypeNotFoundError(DependencyNotFoundError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tipo de servicio '{name}' no encontrado.")


class PayloadTooLargeError(FileStorageError):
    status_code = 413

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        super().__init__(f"El archivo excede el tamaño máximo permitido de {max_bytes} bytes.")
