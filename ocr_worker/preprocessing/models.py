from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class WorkItem:
    """One frame queued for recognition, with a time-boxed URL to its crop."""

    filename: str
    base_key: str
    crop_key: str
    signed_url: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkItem":
        return cls(
            filename=data["filename"],
            base_key=data["base_key"],
            crop_key=data["crop_key"],
            signed_url=data["signed_url"],
        )


@dataclass
class BuildResult:
    """Output of archive preprocessing. ``items`` are in natural filename order."""

    total_images: int
    raw_zip_key: str | None = None
    raw_zip_size_bytes: int | None = None
    thumbnail_key: str | None = None
    items: list[WorkItem] = field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        """JSON-ready view without the work items (those carry signed URLs)."""
        data = asdict(self)
        data.pop("items")
        return data
