import asyncio
import errno
import json
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from planea_common.normalize import normalize_document, serialize_document
from planea_common.schemas import Document, default_document

logger = logging.getLogger("planea-server")

DATA_PATH = os.getenv(
    "PLANEA_DATA_PATH",
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data", "seed.json"),
)

# Algunos bind-mounts de contenedores no permiten renombrar sobre el archivo montado
NON_ATOMIC_ERRNOS = {errno.EXDEV, errno.EBUSY, errno.EPERM}


class WriteQueue:
    """
    Cola FIFO de un solo trabajador para el ciclo leer-modificar-escribir.

    `asyncio.Lock` despierta a sus esperas en orden de llegada, así que cada
    escritura empieza solo cuando la anterior terminó por completo.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self.pending = 0

    @asynccontextmanager
    async def slot(self):
        self.pending += 1
        try:
            async with self._lock:
                yield
        finally:
            self.pending -= 1


class DocumentStore:
    """Archivo JSON único que guarda el documento canónico."""

    def __init__(self, path):
        self.path = Path(path)
        self.tmp_path = self.path.with_name(self.path.name + ".tmp")
        self.queue = WriteQueue()

    def exists(self) -> bool:
        return self.path.is_file()

    def _load_sync(self) -> Document:
        raw = self.path.read_text(encoding="utf-8")
        return normalize_document(json.loads(raw), default_document())

    def _write_sync(self, document: Document):
        payload = json.dumps(serialize_document(document), indent=2, ensure_ascii=False)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.tmp_path.write_text(payload, encoding="utf-8")
        try:
            os.replace(self.tmp_path, self.path)
        except OSError as e:
            if e.errno not in NON_ATOMIC_ERRNOS:
                raise
            logger.warning(f"⚠️ Reemplazo atómico no disponible ({errno.errorcode.get(e.errno)}), escribiendo directo")
            self.path.write_text(payload, encoding="utf-8")
            self.tmp_path.unlink(missing_ok=True)

    async def load(self) -> Document:
        """Lee y normaliza el archivo. Propaga FileNotFoundError, OSError y ValueError."""
        return await asyncio.to_thread(self._load_sync)

    async def write(self, document: Document):
        await asyncio.to_thread(self._write_sync, document)

    async def load_or_default(self) -> Document:
        """Estado actual para el ciclo de escritura; nunca escribe."""
        try:
            return await self.load()
        except FileNotFoundError:
            return default_document()
        except (OSError, ValueError) as e:
            logger.error(f"❌ Error leyendo {self.path}: {e}")
            return default_document()


document_store = DocumentStore(DATA_PATH)


def get_store() -> DocumentStore:
    return document_store
