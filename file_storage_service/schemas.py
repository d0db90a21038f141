from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

class ClientInDB(BaseModel):
    id: int
    name: str
    details: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class LocationInDB(BaseModel):
    id: int
    name: str
    address: Optional[str] = None
    details: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class ServiceTypeInDB(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class FileUploadMetadata(BaseModel):
    """Form metadata sent along an upload, already stripped of blanks."""
    client_name: Optional[str] = None
    location_name: Optional[str] = None
    service_type_name: Optional[str] = None
    periodicity: Optional[str] = None
    equipment_name: Optional[str] = None
    task_id: Optional[str] = None
    service_date: Optional[datetime] = None
    uploaded_by_user_id: Optional[str] = None
    extra_metadata: Optional[str] = None
    client_details: Optional[str] = None
    location_address: Optional[str] = None
    location_details: Optional[str] = None

class FileBase(BaseModel):
    original_filename: str
    stored_filename: str
    mime_type: Optional[str] = None
    size_bytes: int

class FileCreate(FileBase):
    storage_path: str
    client_id: int
    location_id: int
    service_type_id: int
    periodicity: Optional[str] = None
    equipment_name: Optional[str] = None
    task_id: Optional[str] = None
    service_date: Optional[datetime] = None
    uploaded_by_user_id: Optional[str] = None
    extra_metadata: Optional[Any] = None

class FileInDB(FileCreate):
    id: int
    content_hash: Optional[str] = None
    uploaded_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class FileWithRelations(FileInDB):
    client: ClientInDB
    location: LocationInDB
    service_type: ServiceTypeInDB

class FileUploadResponse(BaseModel):
    message: str
    file: FileInDB

class Pagination(BaseModel):
    total_items: int
    total_pages: int
    current_page: int
    items_per_page: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class FileListQuery(BaseModel):
    client_id: Optional[int] = None
    client_name: Optional[str] = None
    location_id: Optional[int] = None
    location_name: Optional[str] = None
    service_type_id: Optional[int] = None
    service_type_name: Optional[str] = None
    service_date: Optional[str] = None
    page: int = 1
    limit: int = 10
    sort_by: str = "uploaded_at"
    sort_order: str = "desc"

class FileListResponse(BaseModel):
    data: List[FileWithRelations]
    pagination: Pagination

class FileDeleteResponse(BaseModel):
    message: str
    file_id: int = Field(alias="fileId")

    model_config = ConfigDict(populate_by_name=True)
