"""Archive entry filtering and frame filename ordering."""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath

_IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg"})
_LEADING_DIGITS = re.compile(r"^([0-9]+)")
_ONLY_DIGITS = re.compile(r"^[0-9]+$")
_TOKENS = re.compile(r"[0-9]+|[^0-9]+")


@dataclass(frozen=True)
class ProcessableEntry:
    """An archive entry accepted for recognition."""

    original_name: str
    base_key: str
    extension: str
    include_in_archive: bool

    def crop_filename(self, ordinal: int) -> str:
        """PNG name for the crop, prefixed with the entry's position in the archive.

        Entries in different folders (or with different extensions) can share a
        stem, so the ordinal keeps their crop keys apart.
        """
        return f"{ordinal:06d}-{PurePosixPath(self.original_name).stem}.png"

    @property
    def archive_filename(self) -> str:
        return f"{self.base_key}{self.extension}"


def validate_processable_entry(entry_name: str) -> ProcessableEntry | None:
    """Return the entry if it is a frame image, otherwise None.

    Frames are png/jpg/jpeg files whose name starts with ASCII digits. macOS
    metadata (``__MACOSX/`` trees and ``._`` AppleDouble files) is dropped.
    Only names that are nothing but the digit run (``7.png``, not ``7-1.png``)
    qualify for the filtered archive.
    """
    path = PurePosixPath(entry_name.replace("\\", "/"))
    if "__MACOSX" in path.parts:
        return None
    name = path.name
    if name.startswith("._"):
        return None
    extension = path.suffix
    if extension.lower() not in _IMAGE_EXTENSIONS:
        return None
    stem = name[: -len(extension)]
    match = _LEADING_DIGITS.match(stem)
    if match is None:
        return None
    return ProcessableEntry(
        original_name=name,
        base_key=str(int(match.group(1))),
        extension=extension,
        include_in_archive=bool(_ONLY_DIGITS.match(stem)),
    )


def base_key_from_filename(filename: str) -> str:
    """3.png -> "3", 3-1.png -> "3", 012_2.jpeg -> "12"; names without digits map to themselves."""
    stem = re.sub(r"\.[^.]+$", "", filename)
    match = _LEADING_DIGITS.match(stem)
    if match is None:
        return stem
    return str(int(match.group(1)))


def _tokens(name: str) -> tuple[tuple[int, int | str], ...]:
    stem = re.sub(r"\.[^.]+$", "", name.lower())
    raw = _TOKENS.findall(stem) or [stem]
    return tuple((0, int(t)) if "0" <= t[0] <= "9" else (1, t) for t in raw if t)


def natural_sort_key(name: str) -> tuple[tuple[tuple[int, int | str], ...], str]:
    """Sort key: digit runs by value, other runs case-folded, raw name as tie-breaker.

    Numbers sort before text at the same position and a name that is a prefix
    of another sorts first, so 1.png < 1-1.png < 2.png < 10.png.
    """
    return _tokens(name), name


def compare_filenames(a: str, b: str) -> int:
    """Three-way comparison matching ``natural_sort_key``."""
    key_a, key_b = natural_sort_key(a), natural_sort_key(b)
    if key_a == key_b:
        return 0
    return -1 if key_a < key_b else 1
