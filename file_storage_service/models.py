from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, BigInteger, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)

class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    files = relationship("File", back_populates="client")

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}')>"

class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    address = Column(String, nullable=True)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    files = relationship("File", back_populates="location")

    def __repr__(self):
        return f"<Location(id={self.id}, name='{self.name}')>"

class ServiceType(Base):
    __tablename__ = "service_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    files = relationship("File", back_populates="service_type")

    def __repr__(self):
        return f"<ServiceType(id={self.id}, name='{self.name}')>"

class File(Base):
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, index=True)
    original_filename = Column(String, nullable=False)
    stored_filename = Column(String, nullable=False)
    mime_type = Column(String, nullable=True)
    size_bytes = Column(BigInteger, nullable=False)
    storage_path = Column(String, nullable=False, unique=True)

    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    service_type_id = Column(Integer, ForeignKey("service_types.id"), nullable=False, index=True)

    periodicity = Column(String, nullable=True)
    equipment_name = Column(String, nullable=True)
    task_id = Column(String, nullable=True)

    service_date = Column(DateTime, nullable=True, index=True)
    uploaded_by_user_id = Column(String, nullable=True)
    extra_metadata = Column(JSON, nullable=True)
    # always null, deduplication is not implemented
    content_hash = Column(String, nullable=True)

    uploaded_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    client = relationship("Client", back_populates="files")
    location = relationship("Location", back_populates="files")
    service_type = relationship("ServiceType", back_populates="files")

    def __repr__(self):
        return f"<File(id={self.id}, name='{self.original_filename}', path='{self.storage_path}')>"
