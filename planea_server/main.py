import json
import logging
import os
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from planea_common.normalize import serialize_document
from planea_common.schemas import GeneratePlanRequest, InsightsRequest, OkResponse

from . import crud
from .errors import (
    AIConfigurationError,
    EmptyAIResponseError,
    InvalidPayloadError,
    PayloadTooLargeError,
    ServiceError,
)
from .services.gemini import GeminiClient, get_gemini
from .storage import DocumentStore, document_store, get_store

# Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("planea-server")

CORS_ORIGIN = os.getenv("CORS_ORIGIN", "http://localhost:3000")
MAX_BODY_SIZE = int(os.getenv("MAX_BODY_SIZE", str(10 * 1024 * 1024)))  # 10 MB


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Inicializar el archivo de datos si no existe
    await crud.get_document(document_store)
    logger.info(f"🚀 Planea server listo. Archivo de datos: {document_store.path}")
    yield


app = FastAPI(
    title="Planea Data Service",
    description="Persistencia del documento de proyectos, tareas, tiempos y equipo.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[CORS_ORIGIN],
    allow_methods=["GET", "PUT", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

router = APIRouter(prefix="/api")


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    logger.error(f"❌ {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


async def read_body(request: Request, max_size: int) -> bytes:
    """Lee el cuerpo cortando en cuanto supera `max_size`."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_size:
        raise PayloadTooLargeError()

    size = 0
    chunks = []
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_size:
            raise PayloadTooLargeError()
        chunks.append(chunk)
    return b"".join(chunks)


async def read_json(request: Request):
    body = await read_body(request, MAX_BODY_SIZE)
    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except ValueError as e:
        raise InvalidPayloadError() from e


def _parse_request(model, data):
    if not isinstance(data, dict):
        return None
    try:
        return model.model_validate(data)
    except ValidationError:
        return None


@app.get("/health")
def health_check():
    """Health check para Docker."""
    return {"status": "ok"}


# --- DOCUMENTO ---

@router.get("/data")
async def read_data(store: DocumentStore = Depends(get_store)):
    """
    **Documento completo**

    Devuelve proyectos, proyecto activo, registros de tiempo, miembros y
    configuración de IA.
    """
    document = await crud.get_document(store)
    return serialize_document(document)


@router.put("/data", response_model=OkResponse)
async def write_data(request: Request, store: DocumentStore = Depends(get_store)):
    """
    **Guardar Documento** (completo o parcial)

    Las escrituras concurrentes se aplican en orden de llegada; las entidades
    inválidas se descartan sin rechazar la petición.
    """
    incoming = await read_json(request)
    await crud.update_document(store, incoming)
    return {"ok": True}


# --- IA ---

@router.post("/ai/generate-plan")
async def generate_plan(request: Request, gemini: GeminiClient = Depends(get_gemini)):
    """**Generar Plan** de etapas y tareas a partir de una descripción libre."""
    payload = _parse_request(GeneratePlanRequest, await read_json(request))
    if payload is None or not payload.description or not payload.model:
        return JSONResponse(status_code=400, content={"ok": False, "error": "Missing description or model"})

    data = await gemini.generate_plan(payload.description, payload.model)
    if data is None:
        raise EmptyAIResponseError()
    return {"ok": True, "data": data}


@router.post("/ai/insights")
async def project_insights(request: Request, gemini: GeminiClient = Depends(get_gemini)):
    """
    **Sugerencias del Proyecto**

    Sin clave configurada o con respuesta vacía se devuelve una lista vacía;
    para el cliente eso nunca es un error.
    """
    payload = _parse_request(InsightsRequest, await read_json(request))
    if payload is None or not payload.project_data or not payload.model:
        return JSONResponse(status_code=400, content={"ok": False, "error": "Missing projectData or model"})

    try:
        data = await gemini.project_insights(payload.project_data, payload.model)
    except AIConfigurationError:
        return {"ok": True, "data": []}
    return {"ok": True, "data": data if data is not None else []}


app.include_router(router)


def run():
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "3001")))
