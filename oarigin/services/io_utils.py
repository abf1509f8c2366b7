"""
Utilitaires IO JSON (rapides) basés sur orjson.
- read_json(Path)  -> Any | None (None si le fichier n'existe pas)
- write_json(Path, data) -> écriture binaire (dossiers parents créés)
- append_ndjson(Path, item) / read_ndjson(Path) pour les journaux append-only

Note :
- orjson travaille en bytes; les fichiers sont ouverts en binaire.
"""
import orjson as json
from pathlib import Path
from typing import Any, Iterable


def read_json(path: Path) -> Any:
    """Lit un fichier JSON (None s'il n'existe pas)."""
    if not path.exists():
        return None
    with path.open("rb") as f:
        return json.loads(f.read())


def write_json(path: Path, data: Any) -> None:
    """Écrit un fichier JSON, en créant le dossier parent si besoin."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as f:
        f.write(json.dumps(data))


def append_ndjson(path: Path, item: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("ab") as f:
        f.write(json.dumps(item))
        f.write(b"\n")


def write_ndjson(path: Path, items: Iterable[Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as f:
        for item in items:
            f.write(json.dumps(item))
            f.write(b"\n")


def read_ndjson(path: Path) -> list[Any]:
    """Lit un journal en ignorant les lignes vides ou corrompues."""
    if not path.exists():
        return []
    items: list[Any] = []
    with path.open("rb") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                items.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return items
