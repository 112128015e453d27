from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

CHUNK_SIZE = 1024 * 1024


def is_media_file(path: Path, extension: str) -> bool:
    return path.is_file() and path.suffix.lower() == extension.lower()


def iter_file_chunks(path: Path, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            yield chunk


def split_recording_name(file_name: str, delimiter: str = "_") -> tuple[str, str] | None:
    """Split ``<model>_<label>.<ext>`` into ``(model, label)``.

    Only the first two delimiter-separated fields are used; anything after the
    second delimiter is ignored. Returns ``None`` when the stem does not contain
    the delimiter or either field is empty.
    """
    stem = Path(file_name).stem
    if delimiter not in stem:
        return None
    parts = stem.split(delimiter)
    model_name, recording_label = parts[0].strip(), parts[1].strip()
    if not model_name or not recording_label:
        return None
    return model_name, recording_label
