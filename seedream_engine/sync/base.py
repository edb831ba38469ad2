"""Gallery/task store contract."""

from __future__ import annotations

from typing import Any, Mapping, Protocol


class GalleryStore(Protocol):
    def is_configured(self) -> bool:
        ...

    def create_record(self, record_id: str, fields: Mapping[str, Any]) -> None:
        ...

    def update_record_status(self, record_id: str, status: str, patch: Mapping[str, Any] | None = None) -> None:
        ...

    def upload_blob(self, data: bytes, filename: str) -> str:
        ...

    def get_record(self, record_id: str) -> dict[str, Any] | None:
        ...
