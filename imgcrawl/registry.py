"""Deduplicated image collection with selection and retry state."""

from __future__ import annotations

import threading
from typing import Iterable

from .types import ImageCandidate, ImageRecord, ImageType
from .url import normalize_url


class ImageRegistry:
    """Own every ImageRecord of a session.

    Records are keyed by canonical image URL and kept in discovery order. The
    first page to register an image wins its `source_url`. Selection and retry
    calls may come from a UI thread while the crawl loop registers, hence the
    lock.
    """

    def __init__(self, max_retries: int) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self._records: dict[str, ImageRecord] = {}
        self._lock = threading.Lock()

    def register(self, candidates: Iterable[ImageCandidate]) -> list[ImageRecord]:
        """Append candidates whose URL is not yet known. Returns the new records."""

        added: list[ImageRecord] = []
        with self._lock:
            for candidate in candidates:
                if candidate.key in self._records:
                    continue
                record = ImageRecord.from_candidate(candidate)
                self._records[candidate.key] = record
                added.append(record)
        return added

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, url: object) -> bool:
        return isinstance(url, str) and self.get(url) is not None

    def get(self, url: str) -> ImageRecord | None:
        key = normalize_url(url)
        if key is None:
            return None
        with self._lock:
            return self._records.get(key)

    def records(self) -> list[ImageRecord]:
        """Return all records in discovery order."""

        with self._lock:
            return list(self._records.values())

    def selected(self) -> list[ImageRecord]:
        with self._lock:
            return [record for record in self._records.values() if record.selected]

    def failed(self) -> list[ImageRecord]:
        with self._lock:
            return [record for record in self._records.values() if record.load_failed]

    def set_selected(self, url: str, selected: bool) -> bool:
        """Set one record's selection flag. Returns False for unknown URLs."""

        record = self.get(url)
        if record is None:
            return False
        with self._lock:
            record.selected = selected
        return True

    def select_all(self, selected: bool) -> None:
        with self._lock:
            for record in self._records.values():
                record.selected = selected

    def filter_by_type(self, image_type: ImageType | str | None) -> list[ImageRecord]:
        """Return records of one type (all records for None). Does not mutate."""

        if image_type is None:
            return self.records()
        wanted = ImageType(image_type)
        with self._lock:
            return [record for record in self._records.values() if record.image_type == wanted]

    def type_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self._lock:
            for record in self._records.values():
                counts[record.image_type.value] = counts.get(record.image_type.value, 0) + 1
        return counts

    def mark_load_failed(self, url: str) -> bool:
        record = self.get(url)
        if record is None:
            return False
        with self._lock:
            record.load_failed = True
        return True

    def mark_loaded(self, url: str) -> bool:
        record = self.get(url)
        if record is None:
            return False
        with self._lock:
            record.load_failed = False
        return True

    def can_retry(self, url: str) -> bool:
        record = self.get(url)
        if record is None:
            return False
        with self._lock:
            return record.load_failed and record.retry_count < self.max_retries

    def retry(self, url: str) -> bool:
        """Clear a load failure and count the retry.

        Returns False once `retry_count` has reached `max_retries`; the record
        then stays permanently failed.
        """

        record = self.get(url)
        if record is None:
            return False
        with self._lock:
            if record.retry_count >= self.max_retries:
                return False
            record.retry_count += 1
            record.load_failed = False
            return True

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


__all__ = ["ImageRegistry"]
