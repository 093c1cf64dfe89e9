import asyncio
import logging
import os
from typing import Any, Callable, Mapping, Optional, Set

import httpx

from planea_common.normalize import normalize_document, serialize_document
from planea_common.schemas import Document, default_document

from .legacy import LegacyStorage

logger = logging.getLogger(__name__)

DEFAULT_API_URL = os.getenv("PLANEA_API_URL", "http://localhost:3001/api")
DEBOUNCE_SECONDS = 0.3


class SaveError(Exception):
    """Fallo al enviar el documento al servicio (red o respuesta no exitosa)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceClient:
    """
    Caché en memoria del documento con escritura diferida (debounce).

    Ciclo de vida: `load()` (hidratación, una sola vez por sesión) →
    `save()` repetidos → `close()` (último flush). El caché es la fuente de
    verdad de la sesión: si una escritura falla se notifica, pero no se
    revierte nada.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        legacy: Optional[LegacyStorage] = None,
        initial: Optional[Document] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient(timeout=10.0)
        self._owns_http = http_client is None
        self.debounce_seconds = debounce_seconds
        self.legacy = legacy
        self.cache: Document = initial if initial is not None else default_document()
        self.is_loaded = False

        self._load_task: Optional[asyncio.Future] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._flush_lock = asyncio.Lock()
        self._flush_tasks: Set[asyncio.Task] = set()
        self._dirty = False
        self._save_error_callback: Optional[Callable[[SaveError], Any]] = None

    @property
    def data_url(self) -> str:
        return f"{self.base_url}/data"

    def on_save_error(self, callback: Callable[[SaveError], Any]):
        """Registra el único callback de errores de guardado (reemplaza al anterior)."""
        self._save_error_callback = callback

    def get_data(self) -> Document:
        return self.cache

    @property
    def has_pending_save(self) -> bool:
        return self._dirty or self._timer is not None or bool(self._flush_tasks)

    # --- HIDRATACION ---

    async def load(self) -> Document:
        """
        Carga el documento remoto una sola vez por sesión.

        Llamadas concurrentes o posteriores comparten la misma tarea. Nunca
        lanza: ante un fallo el caché queda como estaba antes de cargar.
        """
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._load_task)

    async def _load(self) -> Document:
        try:
            response = await self._http.get(self.data_url)
            response.raise_for_status()
            content_type = response.headers.get("content-type", "")
            if "application/json" not in content_type:
                raise ValueError(f"Invalid content type: {content_type!r}")
            self.cache = normalize_document(response.json(), self.cache)
            logger.info(f"✅ Documento cargado: {len(self.cache.projects)} proyectos")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ No se pudo cargar el documento remoto: {e}")

        await self._migrate_legacy()
        self.is_loaded = True
        return self.cache

    async def _migrate_legacy(self):
        """Sube una única vez los datos del almacenamiento local obsoleto."""
        if self.legacy is None:
            return
        legacy = self.legacy.read()
        if legacy is None:
            return

        # Lo que defina el almacenamiento antiguo gana sobre el servidor
        self.cache = normalize_document(legacy, self.cache)
        try:
            await self._put(self.cache)
        except SaveError as e:
            logger.warning(f"⚠️ Migración de datos locales pendiente: {e}")
            return
        self.legacy.clear()
        logger.info("📦 Datos locales migrados al servidor")

    # --- ESCRITURA ---

    def save(self, partial: Mapping[str, Any]):
        """
        Fusiona un documento parcial en el caché y reinicia el debounce.

        Campos ausentes o inválidos conservan el valor actual del caché. Varias
        llamadas dentro de la ventana producen una sola escritura con el
        estado final.
        """
        self.cache = normalize_document(partial, self.cache)
        self._dirty = True
        self._schedule_flush()

    def _schedule_flush(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Sin loop activo: queda pendiente hasta el próximo flush explícito
            return
        self._timer = loop.call_later(self.debounce_seconds, self._on_timer)

    def _on_timer(self):
        self._timer = None
        task = asyncio.ensure_future(self.flush())
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def flush(self) -> bool:
        """Envía ya el caché si hay cambios pendientes. Devuelve False si falló."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        async with self._flush_lock:
            if not self._dirty:
                return True
            self._dirty = False
            try:
                await self._put(self.cache)
            except SaveError as e:
                logger.error(f"❌ Error guardando documento: {e}")
                if self._save_error_callback is not None:
                    self._save_error_callback(e)
                return False
        return True

    async def _put(self, document: Document):
        try:
            response = await self._http.put(self.data_url, json=serialize_document(document))
        except httpx.HTTPError as e:
            raise SaveError(f"Save failed: {e}") from e
        if not response.is_success:
            raise SaveError(f"Save failed: {response.status_code}", status_code=response.status_code)

    async def close(self):
        """Último flush y liberación del cliente HTTP propio."""
        if self._flush_tasks:
            await asyncio.gather(*list(self._flush_tasks), return_exceptions=True)
        await self.flush()
        if self._owns_http:
            await self._http.aclose()
