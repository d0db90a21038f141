from typing import List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

import models, schemas
from logging_config import get_logger

logger = get_logger(__name__)

SERVICE_TYPE_SEED = (
    ("Mantenimientos", "Servicios de mantenimiento preventivo y correctivo."),
    ("Levantamientos", "Servicios de levantamiento de información y diagnóstico."),
    ("Obras", "Servicios relacionados con la ejecución de obras y proyectos."),
)

async def _get_by_name(db: AsyncSession, model, name: str):
    result = await db.execute(select(model).filter(model.name == name))
    return result.scalars().first()

async def _get_or_create_by_name(db: AsyncSession, model, name: str, **fields):
    instance = await _get_by_name(db, model, name)
    if instance:
        return instance

    instance = model(name=name, **fields)
    db.add(instance)
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent request inserted the same name first.
        await db.rollback()
        logger.info(f"{model.__name__} '{name}' was created concurrently, re-fetching it.")
        instance = await _get_by_name(db, model, name)
        if instance is None:
            raise
        return instance
    await db.refresh(instance)
    logger.info(f"Created {model.__name__} '{name}' (ID: {instance.id}).")
    return instance

async def get_client_by_name(db: AsyncSession, name: str) -> Optional[models.Client]:
    return await _get_by_name(db, models.Client, name)

async def get_location_by_name(db: AsyncSession, name: str) -> Optional[models.Location]:
    return await _get_by_name(db, models.Location, name)

async def get_service_type_by_name(db: AsyncSession, name: str) -> Optional[models.ServiceType]:
    return await _get_by_name(db, models.ServiceType, name)

async def get_or_create_client(db: AsyncSession, name: str, details: Optional[str] = None) -> models.Client:
    return await _get_or_create_by_name(db, models.Client, name, details=details)

async def get_or_create_location(
    db: AsyncSession, name: str, address: Optional[str] = None, details: Optional[str] = None
) -> models.Location:
    return await _get_or_create_by_name(db, models.Location, name, address=address, details=details)

async def seed_service_types(db: AsyncSession) -> None:
    for name, description in SERVICE_TYPE_SEED:
        if await get_service_type_by_name(db, name) is None:
            db.add(models.ServiceType(name=name, description=description))
            logger.info(f"Seeding service type '{name}'.")
    await db.commit()

async def create_file(db: AsyncSession, file_in: schemas.FileCreate) -> models.File:
    db_file = models.File(**file_in.model_dump())
    db.add(db_file)
    await db.commit()
    await db.refresh(db_file)
    return db_file

async def get_file_by_id(db: AsyncSession, file_id: int) -> Optional[models.File]:
    result = await db.execute(select(models.File).filter(models.File.id == file_id))
    return result.scalars().first()

async def list_files(
    db: AsyncSession,
    conditions: Sequence,
    order_by: Sequence,
    skip: int,
    limit: int,
) -> List[models.File]:
    stmt = (
        select(models.File)
        .options(
            selectinload(models.File.client),
            selectinload(models.File.location),
            selectinload(models.File.service_type),
        )
        .filter(*conditions)
        .order_by(*order_by)
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())

async def count_files(db: AsyncSession, conditions: Sequence) -> int:
    result = await db.execute(select(func.count()).select_from(models.File).filter(*conditions))
    return result.scalar_one()

async def delete_file(db: AsyncSession, db_file: models.File) -> None:
    await db.delete(db_file)
    await db.commit()
