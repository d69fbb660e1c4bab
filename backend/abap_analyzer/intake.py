"""Helpers for accepting uploaded ABAP source files."""

from __future__ import annotations

from pathlib import PurePath
from typing import Iterable, List, Tuple

from abap_analyzer.models import UploadedFile

ABAP_EXTENSION = ".abap"


def is_abap_filename(filename: str | None) -> bool:
    """Return True when ``filename`` carries the ``.abap`` extension in any case."""
    if not filename:
        return False
    return PurePath(filename).suffix.lower() == ABAP_EXTENSION


def split_by_extension(
    files: Iterable[UploadedFile],
) -> Tuple[List[UploadedFile], List[UploadedFile]]:
    """Partition ``files`` into (accepted, rejected) by extension, keeping order."""
    accepted: List[UploadedFile] = []
    rejected: List[UploadedFile] = []
    for uploaded in files:
        if is_abap_filename(uploaded.name):
            accepted.append(uploaded)
        else:
            rejected.append(uploaded)
    return accepted, rejected


def decode_source(content: bytes, max_chars: int) -> Tuple[str, bool]:
    """Decode raw upload bytes and cut them at ``max_chars``.

    Returns the text and whether it was truncated. Undecodable bytes are
    replaced rather than rejected so that legacy code pages still reach the
    provider.
    """
    text = content.decode("utf-8", errors="replace")
    if text.startswith("\ufeff"):
        text = text[1:]
    if max_chars > 0 and len(text) > max_chars:
        return text[:max_chars], True
    return text, False


def format_size_kb(size: int) -> str:
    return f"{size / 1024:.1f} KB"
