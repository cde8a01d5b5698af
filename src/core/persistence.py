from __future__ import annotations

import json
import logging
import os
from json import JSONDecodeError
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

LOGGER = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# File names
# ---------------------------------------------------------------------------
CALENDAR_FILE_NAME = "calendar_7d.json"
RADAR_DAY_FILE_NAME = "radar_day.json"
RADAR_WEEK_FILE_NAME = "radar_week.json"
TEAM_CACHE_FILE_NAME = "team_form_cache.json"

# ---------------------------------------------------------------------------
# Path helpers (runtime: rispettano RADAR_DATA_DIR se impostata)
# ---------------------------------------------------------------------------


def data_dir() -> Path:
    return Path(os.getenv("RADAR_DATA_DIR", os.path.join("data", "v1")))


# ---------------------------------------------------------------------------
# Low level
# ---------------------------------------------------------------------------


def _ensure_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def dump_json(data: Any, indent: int = 2) -> str:
    """Serializzazione deterministica (stesso input -> stessi byte)."""
    return json.dumps(data, ensure_ascii=False, indent=indent) + "\n"


def write_json_atomic(path: Path, data: Any, indent: int = 2) -> None:
    _ensure_dir(path)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        f.write(dump_json(data, indent=indent))
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)


def write_documents_atomic(documents: Mapping[str, Any], base_dir: Optional[Path] = None) -> Dict[str, Path]:
    """
    Scrive un insieme di documenti JSON.
    Prima serializza tutto su file .tmp, poi esegue i rename: un errore di
    serializzazione non lascia mai documenti parzialmente aggiornati.
    """
    target_dir = base_dir or data_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    staged: Dict[str, Path] = {}
    try:
        for name, payload in documents.items():
            tmp = target_dir / f"{name}.tmp"
            # registrato prima dell'apertura: anche un .tmp scritto a metà va ripulito
            staged[name] = tmp
            with tmp.open("w", encoding="utf-8") as f:
                f.write(dump_json(payload))
                f.flush()
                os.fsync(f.fileno())
    except (TypeError, ValueError, OSError):
        _discard(staged.values())
        raise
    written: Dict[str, Path] = {}
    for name, tmp in staged.items():
        final = target_dir / name
        try:
            os.replace(tmp, final)
        except OSError as e:
            LOGGER.error("Rename failed %s -> %s: %s (written=%s)", tmp, final, e, sorted(written))
            _discard(p for n, p in staged.items() if n not in written)
            raise
        written[name] = final
    return written


def _discard(paths: Iterable[Path]) -> None:
    for tmp in paths:
        try:
            tmp.unlink()
        except FileNotFoundError:
            continue


def load_json_object(path: Path) -> Optional[Dict[str, Any]]:
    """
    Carica un oggetto JSON.
    - File assente: None
    - JSON corrotto o struttura non-oggetto: solleva ValueError (il chiamante decide la policy)
    """
    if not path.exists():
        return None
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except JSONDecodeError as e:
        LOGGER.warning("Invalid / corrupt JSON at %s", path)
        raise ValueError(f"JSON corrotto: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        LOGGER.warning("Error reading JSON file %s: %s", path, e)
        raise ValueError(f"File illeggibile: {path}") from e
    if not isinstance(raw, dict):
        LOGGER.warning("Invalid structure in JSON (expected object) at %s", path)
        raise ValueError(f"Struttura non valida (atteso oggetto): {path}")
    return raw


__all__ = [
    "CALENDAR_FILE_NAME",
    "RADAR_DAY_FILE_NAME",
    "RADAR_WEEK_FILE_NAME",
    "TEAM_CACHE_FILE_NAME",
    "data_dir",
    "dump_json",
    "write_json_atomic",
    "write_documents_atomic",
    "load_json_object",
]
