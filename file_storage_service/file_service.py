"""Upload, download, listing and deletion of stored files.

Every function takes the request's AsyncSession explicitly. Disk and database
are kept consistent as follows: on upload the directory and bytes exist before
the File row is written, and the bytes are removed again if the row cannot be
written; on delete the row is removed even when the bytes cannot be, so the
database is authoritative for what has been deleted.
"""
import json
import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncIterator, List, Optional

import aiofiles
from sqlalchemy.ext.asyncio import AsyncSession

import crud, models, schemas, storage
from exceptions import (
    FileRecordNotFoundError,
    InvalidFilterError,
    InvalidMetadataJsonError,
    MissingMetadataError,
    PhysicalFileMissingError,
    ServiceTypeNotFoundError,
)
from logging_config import get_logger

logger = get_logger(__name__)

DELETE_SUCCESS_MESSAGE = "Archivo eliminado exitosamente."
DELETE_PARTIAL_MESSAGE = "Archivo eliminado de la base de datos. Error al eliminar del sistema de archivos."
UPLOAD_SUCCESS_MESSAGE = "Archivo subido exitosamente."

DEFAULT_SORT_FIELD = "uploaded_at"
SORTABLE_FIELDS = {
    "id": models.File.id,
    "original_filename": models.File.original_filename,
    "mime_type": models.File.mime_type,
    "size_bytes": models.File.size_bytes,
    "service_date": models.File.service_date,
    "uploaded_at": models.File.uploaded_at,
    "updated_at": models.File.updated_at,
}

def _as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

def parse_extra_metadata(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise InvalidMetadataJsonError()

async def store_uploaded_file(
    db: AsyncSession,
    upload,
    metadata: schemas.FileUploadMetadata,
    upload_root: Path,
) -> models.File:
    """Persist an uploaded file under its metadata-derived path and record it.

    ``upload`` is anything with ``filename``, ``content_type`` and an async
    ``read(size)`` (FastAPI's UploadFile). Validation failures raise before
    anything touches the disk or the database. Once the bytes are written,
    any failure removes them again before the error propagates.
    """
    required = (metadata.client_name, metadata.location_name, metadata.service_type_name)
    missing = [field for field, value in zip(storage.REQUIRED_PATH_FIELDS, required) if not value]
    if missing:
        logger.warning(f"Upload rejected, missing metadata: {missing}")
        raise MissingMetadataError(missing)
    extra_metadata = parse_extra_metadata(metadata.extra_metadata)

    directory = storage.build_storage_path(
        upload_root,
        metadata.client_name,
        metadata.location_name,
        metadata.service_type_name,
        periodicity=metadata.periodicity,
        equipment_name=metadata.equipment_name,
        task_id=metadata.task_id,
    )
    destination = await storage.resolve_destination(directory, upload.filename)
    logger.info(f"Saving '{upload.filename}' to {destination}")

    try:
        size_bytes = await storage.write_upload(upload, destination)

        service_type = await crud.get_service_type_by_name(db, metadata.service_type_name)
        if service_type is None:
            raise ServiceTypeNotFoundError(metadata.service_type_name)
        service_type_id = service_type.id

        # ids are read right away: a rollback in a later get-or-create expires loaded rows
        client = await crud.get_or_create_client(db, metadata.client_name, details=metadata.client_details)
        client_id = client.id
        location = await crud.get_or_create_location(
            db,
            metadata.location_name,
            address=metadata.location_address,
            details=metadata.location_details,
        )
        location_id = location.id

        file_in = schemas.FileCreate(
            original_filename=upload.filename,
            stored_filename=destination.name,
            mime_type=upload.content_type,
            size_bytes=size_bytes,
            storage_path=str(destination),
            client_id=client_id,
            location_id=location_id,
            service_type_id=service_type_id,
            periodicity=metadata.periodicity,
            equipment_name=metadata.equipment_name,
            task_id=metadata.task_id,
            service_date=_as_naive_utc(metadata.service_date),
            uploaded_by_user_id=metadata.uploaded_by_user_id,
            extra_metadata=extra_metadata,
        )
        db_file = await crud.create_file(db, file_in)
    except Exception:
        # the orphan is removed even when the rollback itself fails
        outcome = await storage.remove_physical_file(destination)
        if outcome.failed:
            logger.error(f"Could not remove orphaned upload {destination}: {outcome.error}")
        else:
            logger.info(f"Removed orphaned upload {destination} ({outcome.status.value}).")
        await db.rollback()
        raise

    logger.info(f"Saved '{db_file.original_filename}' (ID: {db_file.id}) metadata to DB.")
    return db_file

@dataclass
class DownloadResult:
    file: models.File
    content: AsyncIterator[bytes]
    handle: Any = None

    async def close(self) -> None:
        """Release the file handle even if ``content`` was never iterated."""
        if self.handle is not None:
            await self.handle.close()

async def _stream_file(handle, file_id: int) -> AsyncIterator[bytes]:
    try:
        while chunk := await handle.read(storage.CHUNK_SIZE):
            yield chunk
    except OSError:
        # headers are already sent, the response can only be cut short
        logger.exception(f"Error while streaming file ID {file_id}, download aborted.")
    finally:
        await handle.close()

async def resolve_download(db: AsyncSession, file_id: int) -> DownloadResult:
    db_file = await crud.get_file_by_id(db, file_id)
    if db_file is None:
        logger.warning(f"File not found for download: ID {file_id}")
        raise FileRecordNotFoundError(file_id)

    try:
        handle = await aiofiles.open(db_file.storage_path, "rb")
    except OSError as e:
        logger.error(
            f"File ID {file_id} found in DB but not readable at {db_file.storage_path}: {e}. Inconsistency!"
        )
        raise PhysicalFileMissingError(file_id, db_file.storage_path)

    logger.debug(f"Serving file ID {file_id} from {db_file.storage_path}")
    return DownloadResult(file=db_file, content=_stream_file(handle, file_id), handle=handle)

def parse_service_day(value: str):
    """Return the [start, end) datetimes of the calendar day of an ISO-8601 value."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise InvalidFilterError(
            "fechaRealizacionServicio",
            "fechaRealizacionServicio debe ser una fecha válida en formato ISO 8601.",
        )
    start = datetime.combine(parsed.date(), time.min)
    return start, start + timedelta(days=1)

def build_file_filters(query: schemas.FileListQuery) -> List:
    conditions = []

    if query.client_id:
        conditions.append(models.File.client_id == query.client_id)
    elif query.client_name:
        conditions.append(models.File.client.has(models.Client.name == query.client_name))

    if query.location_id:
        conditions.append(models.File.location_id == query.location_id)
    elif query.location_name:
        conditions.append(models.File.location.has(models.Location.name == query.location_name))

    if query.service_type_id:
        conditions.append(models.File.service_type_id == query.service_type_id)
    elif query.service_type_name:
        conditions.append(models.File.service_type.has(models.ServiceType.name == query.service_type_name))

    if query.service_date:
        start, end = parse_service_day(query.service_date)
        conditions.append(models.File.service_date >= start)
        conditions.append(models.File.service_date < end)

    return conditions

def resolve_ordering(sort_by: Optional[str], sort_order: Optional[str]) -> List:
    column = SORTABLE_FIELDS.get(sort_by, SORTABLE_FIELDS[DEFAULT_SORT_FIELD])
    if sort_order == "asc":
        return [column.asc(), models.File.id.asc()]
    return [column.desc(), models.File.id.desc()]

async def list_files(db: AsyncSession, query: schemas.FileListQuery) -> schemas.FileListResponse:
    conditions = build_file_filters(query)
    order_by = resolve_ordering(query.sort_by, query.sort_order)
    skip = (query.page - 1) * query.limit

    files = await crud.list_files(db, conditions, order_by, skip=skip, limit=query.limit)
    total_items = await crud.count_files(db, conditions)
    logger.debug(f"Listing {len(files)} of {total_items} files (page {query.page}, limit {query.limit})")

    return schemas.FileListResponse(
        data=[schemas.FileWithRelations.model_validate(f) for f in files],
        pagination=schemas.Pagination(
            total_items=total_items,
            total_pages=math.ceil(total_items / query.limit),
            current_page=query.page,
            items_per_page=query.limit,
        ),
    )

async def delete_file(db: AsyncSession, file_id: int) -> schemas.FileDeleteResponse:
    db_file = await crud.get_file_by_id(db, file_id)
    if db_file is None:
        logger.warning(f"File not found for deletion: ID {file_id}")
        raise FileRecordNotFoundError(file_id)

    storage_path = db_file.storage_path
    outcome = await storage.remove_physical_file(storage_path)
    if outcome.status is storage.RemovalStatus.REMOVED:
        logger.info(f"Physical file removed: {storage_path}")
    elif outcome.status is storage.RemovalStatus.ALREADY_ABSENT:
        logger.warning(f"Physical file {storage_path} was already absent, removing the DB record anyway.")
    else:
        logger.error(f"Could not remove physical file {storage_path} for ID {file_id}: {outcome.error}")

    await crud.delete_file(db, db_file)
    logger.info(f"File record deleted from DB: ID {file_id}")

    message = DELETE_PARTIAL_MESSAGE if outcome.failed else DELETE_SUCCESS_MESSAGE
    return schemas.FileDeleteResponse(message=message, file_id=file_id)
