from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from contextlib import asynccontextmanager

import crud, storage
from database import engine, AsyncSessionLocal
from exceptions import FileStorageError, ValidationError
from models import Base
from routers import files as files_router
from logging_config import get_logger
from config import settings

logger = get_logger(__name__)

async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created or already exist.")
    async with AsyncSessionLocal() as session:
        await crud.seed_service_types(session)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("File Storage Service starting up...")
    await create_db_and_tables()
    await storage.ensure_directory(settings.UPLOAD_DIR)
    logger.info(f"Upload directory {settings.UPLOAD_DIR} ensured.")
    yield
    await engine.dispose()
    logger.info("File Storage Service shutting down...")

app = FastAPI(
    title="File Storage Service",
    version="1.0.0",
    description="Almacenamiento de archivos con rutas derivadas de sus metadatos.",
    lifespan=lifespan
)

app.include_router(files_router.router)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    client_host = request.client.host if request.client else "-"
    logger.info(f"{request.method} {request.url.path} - IP: {client_host}")
    response = await call_next(request)
    logger.info(f"{response.status_code} {request.method} {request.url.path} - IP: {client_host}")
    return response

@app.exception_handler(FileStorageError)
async def file_storage_error_handler(request: Request, exc: FileStorageError):
    content = {"message": exc.message}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)

@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in error["loc"][1:]) or str(error["loc"][0]), "msg": error["msg"]}
        for error in exc.errors()
    ]
    logger.warning(f"Validation failed for {request.method} {request.url.path}: {errors}")
    return JSONResponse(status_code=400, content={"message": "Parámetros inválidos.", "errors": errors})

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Ocurrió un error en el servidor."})

@app.get("/ping")
async def ping():
    return {"ping": "pong! from File Storage Service"}

@app.get("/", response_class=PlainTextResponse)
async def read_root():
    return "File Storage Service is running!"

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting File Storage Service on {settings.HOST}:{settings.PORT}")
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=True)
