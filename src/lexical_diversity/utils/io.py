"""I/O helpers for reading and writing structured data."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

import yaml


def load_jsonl(path: Path, on_invalid: Optional[Callable[[int, str], None]] = None) -> Iterator[Any]:
    """Yield objects from a JSON Lines file, skipping blank lines.

    Malformed lines raise ``json.JSONDecodeError`` unless ``on_invalid`` is
    given, in which case it receives the line number and text and the line
    is skipped.
    """
    with path.open("r", encoding="utf-8") as stream:
        for line_number, line in enumerate(stream, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                if on_invalid is None:
                    raise
                on_invalid(line_number, line)
                continue
            yield record


def save_json(path: Path, data: Any, *, indent: int = 2) -> None:
    """Write ``data`` to ``path`` as JSON with UTF-8 encoding."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as stream:
        json.dump(data, stream, indent=indent, ensure_ascii=False)
        stream.write("\n")


def load_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as stream:
        return json.load(stream)


def load_yaml_or_json(path: Path) -> Dict[str, Any]:
    """Load a mapping from YAML or JSON depending on the file suffix."""
    with path.open("r", encoding="utf-8") as stream:
        if path.suffix.lower() in {".yaml", ".yml"}:
            loaded = yaml.safe_load(stream)
        else:
            loaded = json.load(stream)
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise TypeError(f"Expected mapping at root of {path.name}")
    return loaded


def file_digest(path: Path) -> str:
    """SHA-256 hex digest of the raw bytes stored at ``path``."""
    digest = hashlib.sha256()
    with path.open("rb") as stream:
        for block in iter(lambda: stream.read(65536), b""):
            digest.update(block)
    return digest.hexdigest()


def source_fingerprint(path: Path, *, head_bytes: int = 1024) -> str:
    """Cheap change detector for large source files (size, mtime and first bytes)."""
    stat = path.stat()
    digest = hashlib.md5()
    digest.update(f"{stat.st_size}-{int(stat.st_mtime)}-".encode("utf-8"))
    with path.open("rb") as stream:
        digest.update(stream.read(head_bytes))
    return digest.hexdigest()
