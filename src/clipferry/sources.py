from __future__ import annotations

from pathlib import Path

from .models import Job
from .utils import is_media_file, split_recording_name


def enumerate_local_files(directory: Path, extension: str = ".mp4") -> list[Path]:
    if not directory.is_dir():
        raise NotADirectoryError(f"source directory not found: {directory}")
    return sorted(
        (path for path in directory.iterdir() if is_media_file(path, extension)),
        key=lambda p: p.name,
    )


def delete_local_file(path: Path) -> None:
    path.unlink()


def build_job(path: Path, delimiter: str = "_") -> Job:
    parsed = split_recording_name(path.name, delimiter)
    if parsed is None:
        return Job(
            file_path=path,
            model_name=None,
            recording_label=None,
            parse_error=f"file name {path.name!r} does not match <model>{delimiter}<label>{path.suffix}",
        )
    model_name, recording_label = parsed
    return Job(file_path=path, model_name=model_name, recording_label=recording_label)


def build_jobs(directory: Path, extension: str = ".mp4", delimiter: str = "_") -> list[Job]:
    return [build_job(path, delimiter) for path in enumerate_local_files(directory, extension)]
