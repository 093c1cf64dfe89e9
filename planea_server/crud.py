import logging
from typing import Any

from planea_common.normalize import normalize_document
from planea_common.schemas import Document, default_document

from .errors import PersistError
from .storage import DocumentStore

logger = logging.getLogger("planea-server")


async def get_document(store: DocumentStore) -> Document:
    """
    Obtiene el documento actual.

    Si el archivo no existe se inicializa con el documento por defecto. Otros
    errores de lectura se registran y devuelven el documento por defecto sin
    escribirlo. Las lecturas no esperan a la cola de escritura.
    """
    try:
        return await store.load()
    except FileNotFoundError:
        pass
    except (OSError, ValueError) as e:
        logger.error(f"❌ Error leyendo el archivo de datos: {e}")
        return default_document()

    # La inicialización sí pasa por la cola para no pisar un PUT concurrente
    async with store.queue.slot():
        if store.exists():
            return await store.load_or_default()
        document = default_document()
        try:
            await store.write(document)
            logger.info(f"📄 Archivo de datos inicializado en {store.path}")
        except OSError as e:
            logger.error(f"❌ No se pudo inicializar el archivo de datos: {e}")
        return document


async def update_document(store: DocumentStore, incoming: Any) -> Document:
    """
    Aplica un documento completo o parcial.

    Ciclo serializado: leer estado en disco, normalizar el cuerpo usando ese
    estado como respaldo y reemplazar el archivo.
    """
    async with store.queue.slot():
        current = await store.load_or_default()
        document = normalize_document(incoming, current)
        try:
            await store.write(document)
        except OSError as e:
            logger.error(f"❌ Error persistiendo datos: {e}")
            raise PersistError() from e
    return document
