from datetime import datetime
from typing import Literal, Optional
from urllib.parse import quote

from fastapi import APIRouter, UploadFile, File, Form, Depends, Path, Query, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from sqlalchemy.ext.asyncio import AsyncSession

import file_service, schemas
from database import get_db
from config import Settings, get_settings
from exceptions import PayloadTooLargeError, ValidationError
from logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/files",
    tags=["files"],
)

def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None

def content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'

@router.post("/upload", response_model=schemas.FileUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    client_name: Optional[str] = Form(None, alias="clienteNombre"),
    location_name: Optional[str] = Form(None, alias="lugarNombre"),
    service_type_name: Optional[str] = Form(None, alias="tipoServicioNombre"),
    periodicity: Optional[str] = Form(None, alias="periodicidad"),
    equipment_name: Optional[str] = Form(None, alias="nombreEquipo"),
    task_id: Optional[str] = Form(None, alias="identificadorTarea"),
    service_date: Optional[datetime] = Form(None, alias="fechaRealizacionServicio"),
    uploaded_by_user_id: Optional[str] = Form(None, alias="subidoPorUsuarioId"),
    extra_metadata: Optional[str] = Form(None, alias="metadatosAdicionales"),
    client_details: Optional[str] = Form(None, alias="clienteDetalles"),
    location_address: Optional[str] = Form(None, alias="lugarDireccion"),
    location_details: Optional[str] = Form(None, alias="lugarDetalles"),
    db: AsyncSession = Depends(get_db),
    current_settings: Settings = Depends(get_settings),
):
    logger.info(
        f"Upload request for filename: '{file.filename if file else None}' "
        f"by user {uploaded_by_user_id or 'unknown'}"
    )
    if file is None or not file.filename:
        logger.warning("Upload attempt without a file.")
        raise ValidationError(
            "No se proporcionó ningún archivo.",
            errors=[{"field": "file", "msg": "El archivo es requerido."}],
        )
    if file.size is not None and file.size > current_settings.MAX_UPLOAD_SIZE_BYTES:
        logger.warning(f"Upload of '{file.filename}' rejected: {file.size} bytes exceeds the limit.")
        raise PayloadTooLargeError(current_settings.MAX_UPLOAD_SIZE_BYTES)

    metadata = schemas.FileUploadMetadata(
        client_name=_clean(client_name),
        location_name=_clean(location_name),
        service_type_name=_clean(service_type_name),
        periodicity=_clean(periodicity),
        equipment_name=_clean(equipment_name),
        task_id=_clean(task_id),
        service_date=service_date,
        uploaded_by_user_id=_clean(uploaded_by_user_id),
        extra_metadata=_clean(extra_metadata),
        client_details=_clean(client_details),
        location_address=_clean(location_address),
        location_details=_clean(location_details),
    )
    try:
        db_file = await file_service.store_uploaded_file(db, file, metadata, current_settings.UPLOAD_DIR)
    finally:
        await file.close()

    return schemas.FileUploadResponse(
        message=file_service.UPLOAD_SUCCESS_MESSAGE,
        file=schemas.FileInDB.model_validate(db_file),
    )

@router.get("/download/{file_id}")
async def download_file(
    file_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
):
    logger.info(f"Download request for file_id: {file_id}")
    result = await file_service.resolve_download(db, file_id)
    return StreamingResponse(
        result.content,
        media_type=result.file.mime_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(result.file.original_filename)},
        background=BackgroundTask(result.close),
    )

@router.get("", response_model=schemas.FileListResponse)
async def list_files(
    client_id: Optional[int] = Query(None, alias="cliente_id", ge=1),
    client_name: Optional[str] = Query(None, alias="clienteNombre"),
    location_id: Optional[int] = Query(None, alias="lugar_id", ge=1),
    location_name: Optional[str] = Query(None, alias="lugarNombre"),
    service_type_id: Optional[int] = Query(None, alias="tipo_servicio_id", ge=1),
    service_type_name: Optional[str] = Query(None, alias="tipoServicioNombre"),
    service_date: Optional[str] = Query(None, alias="fechaRealizacionServicio"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query(file_service.DEFAULT_SORT_FIELD, alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    db: AsyncSession = Depends(get_db),
):
    query = schemas.FileListQuery(
        client_id=client_id,
        client_name=_clean(client_name),
        location_id=location_id,
        location_name=_clean(location_name),
        service_type_id=service_type_id,
        service_type_name=_clean(service_type_name),
        service_date=_clean(service_date),
        page=page,
        limit=limit,
        sort_by=sort_by.strip(),
        sort_order=sort_order,
    )
    logger.info(f"List request: {query.model_dump(exclude_none=True)}")
    return await file_service.list_files(db, query)

@router.delete("/{file_id}", response_model=schemas.FileDeleteResponse)
async def delete_file(
    file_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
):
    logger.info(f"Delete request for file_id: {file_id}")
    return await file_service.delete_file(db, file_id)
