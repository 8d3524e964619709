"""Bulk image download, zip archive packaging, and JSONL image manifests.

Downloads run on a bounded thread pool (`max_download_workers`); each failure
marks its record `load_failed` in the registry so it can be retried later.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Any, Callable, Iterable
import zipfile

from .constants import DEFAULT_ARCHIVE_NAME, DEFAULT_MANIFEST_NAME
from .errors import ImageLoadFailed
from .registry import ImageRegistry
from .types import ImageFetchResult, ImageRecord

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[ImageRecord, ImageFetchResult], None]


@dataclass(slots=True)
class DownloadOutcome:
    """Per-image download results of one export pass."""

    succeeded: list[tuple[ImageRecord, ImageFetchResult]] = field(default_factory=list)
    failed: list[tuple[ImageRecord, ImageLoadFailed]] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)


def download_images(
    records: Iterable[ImageRecord],
    fetcher: Any,
    *,
    registry: ImageRegistry | None = None,
    max_workers: int = 4,
    on_result: ProgressCallback | None = None,
) -> DownloadOutcome:
    """Fetch image bytes for `records` with at most `max_workers` in flight.

    `fetcher` is any object with `fetch_image(url) -> ImageFetchResult`.
    Results are returned in input order.
    """

    if max_workers < 1:
        raise ValueError("max_workers must be >= 1")

    pending = list(records)
    results: dict[int, ImageFetchResult] = {}
    if not pending:
        return DownloadOutcome()

    with ThreadPoolExecutor(max_workers=min(max_workers, len(pending)), thread_name_prefix="imgcrawl-dl") as pool:
        futures = {pool.submit(fetcher.fetch_image, record.url): index for index, record in enumerate(pending)}
        for future in as_completed(futures):
            index = futures[future]
            record = pending[index]
            try:
                result = future.result()
            except Exception as exc:
                result = ImageFetchResult(
                    requested_url=record.url,
                    final_url=None,
                    status_code=None,
                    content_type=None,
                    body=None,
                    error=f"{exc.__class__.__name__}: {exc}",
                )
            results[index] = result
            if on_result is not None:
                on_result(record, result)

    outcome = DownloadOutcome()
    for index, record in enumerate(pending):
        result = results[index]
        if result.ok:
            if registry is not None:
                registry.mark_loaded(record.url)
            outcome.succeeded.append((record, result))
            continue

        reason = result.error or f"HTTP status {result.status_code}"
        error = ImageLoadFailed(f"Failed to fetch image {record.url}: {reason}", url=record.url)
        LOGGER.warning("%s", error)
        if registry is not None:
            registry.mark_load_failed(record.url)
        outcome.failed.append((record, error))

    return outcome


def retry_failed(
    registry: ImageRegistry,
    fetcher: Any,
    *,
    records: Iterable[ImageRecord] | None = None,
    max_workers: int = 4,
    on_result: ProgressCallback | None = None,
) -> DownloadOutcome:
    """Retry failed records whose retry budget is not exhausted.

    `records` limits the pass to those records (default: every failed record
    in the registry); records that are no longer marked failed are skipped.
    """

    candidates = registry.failed() if records is None else [record for record in records if record.load_failed]
    retryable = [record for record in candidates if registry.retry(record.url)]
    if not retryable:
        return DownloadOutcome()
    LOGGER.info("Retrying %d failed images", len(retryable))
    return download_images(
        retryable,
        fetcher,
        registry=registry,
        max_workers=max_workers,
        on_result=on_result,
    )


def unique_filenames(records: Iterable[ImageRecord]) -> list[str]:
    """Return one archive name per record, suffixing repeats (`a.png`, `a-2.png`)."""

    used: set[str] = set()
    names: list[str] = []
    for record in records:
        stem, ext = os.path.splitext(record.filename or "image")
        candidate = f"{stem}{ext}"
        counter = 2
        while candidate.lower() in used:
            candidate = f"{stem}-{counter}{ext}"
            counter += 1
        used.add(candidate.lower())
        names.append(candidate)
    return names


def write_archive(
    downloads: list[tuple[ImageRecord, ImageFetchResult]],
    output_path: str | Path,
) -> Path:
    """Write downloaded images into a zip archive (atomic replace)."""

    out_path = Path(output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    names = unique_filenames(record for record, _ in downloads)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{out_path.name}.", suffix=".tmp", dir=out_path.parent)
    os.close(fd)
    try:
        with zipfile.ZipFile(tmp_name, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for name, (_, result) in zip(names, downloads):
                archive.writestr(name, result.body or b"")
        os.replace(tmp_name, out_path)
    except Exception:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return out_path


def write_single(record: ImageRecord, result: ImageFetchResult, output_dir: str | Path) -> Path:
    """Save one downloaded image directly under `output_dir`."""

    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / unique_filenames([record])[0]
    out_path.write_bytes(result.body or b"")
    return out_path


def export_selected(
    registry: ImageRegistry,
    fetcher: Any,
    output_dir: str | Path,
    *,
    archive_name: str = DEFAULT_ARCHIVE_NAME,
    max_workers: int = 4,
    retry: bool = False,
    on_result: ProgressCallback | None = None,
) -> tuple[Path | None, DownloadOutcome]:
    """Download every selected image and package the successes.

    One success is written as a plain file, several as a zip archive. With
    `retry=True`, failures still within their retry budget get one more pass.
    Returns the written path (None when nothing succeeded) and the outcome.
    """

    selected = registry.selected()
    if not selected:
        raise ImageLoadFailed("No images selected")

    outcome = download_images(
        selected,
        fetcher,
        registry=registry,
        max_workers=max_workers,
        on_result=on_result,
    )

    if retry and outcome.failed:
        second = retry_failed(
            registry,
            fetcher,
            records=[record for record, _ in outcome.failed],
            max_workers=max_workers,
            on_result=on_result,
        )
        recovered = {record.key for record, _ in second.succeeded}
        outcome.succeeded.extend(second.succeeded)
        outcome.failed = [(record, error) for record, error in outcome.failed if record.key not in recovered]

    if not outcome.succeeded:
        return None, outcome

    if len(outcome.succeeded) == 1:
        record, result = outcome.succeeded[0]
        return write_single(record, result, output_dir), outcome

    return write_archive(outcome.succeeded, Path(output_dir) / archive_name), outcome


def write_manifest(records: Iterable[ImageRecord], output_dir: str | Path, *, name: str = DEFAULT_MANIFEST_NAME) -> Path:
    """Write one JSON line per image record."""

    out_path = Path(output_dir) / name
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", encoding="utf-8") as handle:
        for record in records:
            handle.write(json.dumps(record.to_json(), ensure_ascii=False, sort_keys=True) + "\n")
    return out_path


__all__ = [
    "DownloadOutcome",
    "download_images",
    "export_selected",
    "retry_failed",
    "unique_filenames",
    "write_archive",
    "write_manifest",
    "write_single",
]
