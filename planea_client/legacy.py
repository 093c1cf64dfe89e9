import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Claves del almacenamiento local anterior al servicio de datos
LEGACY_KEYS = {
    "projects": "protrack-projects",
    "activeProjectId": "protrack-active-project-id",
    "timeLogs": "protrack-time-logs",
    "aiSettings": "protrack-ai-settings",
}


class LegacyStorage:
    """
    Almacenamiento local obsoleto: un archivo JSON clave → valor serializado,
    igual que un `localStorage`. Solo se lee para migrarlo al servidor.
    """

    def __init__(self, path):
        self.path = Path(path)

    def _read_items(self) -> Dict[str, str]:
        if not self.path.is_file():
            return {}
        items = json.loads(self.path.read_text(encoding="utf-8"))
        return items if isinstance(items, dict) else {}

    def read(self) -> Optional[Dict[str, Any]]:
        """
        Documento parcial con los campos que el almacenamiento define, o None
        si no hay proyectos guardados o el contenido es ilegible.
        """
        try:
            items = self._read_items()
            raw_projects = items.get(LEGACY_KEYS["projects"])
            if not raw_projects:
                return None
            projects = json.loads(raw_projects)
            if not isinstance(projects, list) or not projects:
                return None

            data: Dict[str, Any] = {"projects": projects}
            for field in ("activeProjectId", "timeLogs", "aiSettings"):
                raw = items.get(LEGACY_KEYS[field])
                if raw:
                    data[field] = json.loads(raw)
            return data
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"⚠️ Almacenamiento local ilegible, se ignora: {e}")
            return None

    def write(self, field: str, value: Any):
        """Guarda un campo con el formato antiguo (usado por herramientas y pruebas)."""
        items = self._read_items()
        items[LEGACY_KEYS[field]] = json.dumps(value)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(items), encoding="utf-8")

    def clear(self):
        items = self._read_items()
        for key in LEGACY_KEYS.values():
            items.pop(key, None)
        if items:
            self.path.write_text(json.dumps(items), encoding="utf-8")
        else:
            self.path.unlink(missing_ok=True)
