"""Physical storage layout for uploaded files.

Files live under ``{root}/{client}/{location}/{service type}[/{sub1}[/{sub2}]]``.
The directory is derived only from the upload metadata, so identical metadata
always lands in the same directory; stored filenames carry a uuid4 token so two
uploads of ``report.pdf`` never collide there.
"""
import enum
import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import aiofiles
import aiofiles.os

from exceptions import MissingMetadataError


CHUNK_SIZE = 1024 * 1024

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")

# Public (form field) names of the metadata required to build a path.
REQUIRED_PATH_FIELDS = ("clienteNombre", "lugarNombre", "tipoServicioNombre")

MANTENIMIENTOS = "Mantenimientos"
LEVANTAMIENTOS = "Levantamientos"
OBRAS = "Obras"


def sanitize_path_part(name: Optional[str]) -> str:
    if not name:
        return ""
    return _UNSAFE_CHARS.sub("_", name)


def _segment(name: str) -> str:
    part = sanitize_path_part(name)
    # "." and ".." survive sanitizing but would escape the upload root
    if not part.strip("."):
        part = "_" * len(part)
    return part


def build_storage_path(
    base_path: Union[str, Path],
    client_name: Optional[str],
    location_name: Optional[str],
    service_type_name: Optional[str],
    periodicity: Optional[str] = None,
    equipment_name: Optional[str] = None,
    task_id: Optional[str] = None,
) -> Path:
    """Return the directory an upload with this metadata is stored in.

    Raises MissingMetadataError listing the absent required fields in
    client, location, service type order. Does not touch the filesystem.
    """
    required = (client_name, location_name, service_type_name)
    missing = [field for field, value in zip(REQUIRED_PATH_FIELDS, required) if not value]
    if missing:
        raise MissingMetadataError(missing)

    path = Path(base_path) / _segment(client_name) / _segment(location_name) / _segment(service_type_name)

    if service_type_name == MANTENIMIENTOS:
        if periodicity and equipment_name:
            path = path / _segment(periodicity) / _segment(equipment_name)
    elif service_type_name == LEVANTAMIENTOS:
        if equipment_name and task_id:
            path = path / _segment(equipment_name) / _segment(task_id)
    elif service_type_name == OBRAS:
        if task_id:
            path = path / _segment(task_id)

    return path


def generate_stored_filename(original_filename: str) -> str:
    base, extension = os.path.splitext(original_filename or "")
    return f"{sanitize_path_part(base)}_{uuid.uuid4()}{extension}"


async def ensure_directory(directory: Path) -> None:
    await aiofiles.os.makedirs(directory, exist_ok=True)


async def resolve_destination(directory: Path, original_filename: str) -> Path:
    """Create the target directory, then name the file inside it.

    Nothing may be written when the directory cannot be created, so the
    filename is only generated once the directory exists.
    """
    await ensure_directory(directory)
    return directory / generate_stored_filename(original_filename)


async def write_upload(source, destination: Path) -> int:
    """Copy an async readable (e.g. UploadFile) to destination; returns bytes written."""
    written = 0
    async with aiofiles.open(destination, "wb") as out_file:
        while chunk := await source.read(CHUNK_SIZE):
            await out_file.write(chunk)
            written += len(chunk)
    return written


class RemovalStatus(enum.Enum):
    REMOVED = "removed"
    ALREADY_ABSENT = "already_absent"
    FAILED = "failed"


@dataclass
class RemovalOutcome:
    status: RemovalStatus
    error: Optional[OSError] = None

    @property
    def failed(self) -> bool:
        return self.status is RemovalStatus.FAILED


async def remove_physical_file(path: Union[str, Path]) -> RemovalOutcome:
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        return RemovalOutcome(RemovalStatus.ALREADY_ABSENT)
    except OSError as e:
        return RemovalOutcome(RemovalStatus.FAILED, e)
    return RemovalOutcome(RemovalStatus.REMOVED)
