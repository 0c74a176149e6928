"""Vietnamese text helpers for search documents."""

from __future__ import annotations

import unicodedata

# Decorative patterns worth surfacing as search hints, most distinctive first.
DECORATIVE_PATTERNS: tuple[str, ...] = (
    "gạch men",
    "hoa sen",
    "chim hạc",
    "chữ thọ",
    "tứ linh",
    "tứ quý",
    "bát bửu",
    "phượng hoàng",
    "rồng",
    "lân",
    "hoa mai",
    "hoa đào",
    "hoa cúc",
    "hoa lan",
    "hoa hồng",
    "hoa huệ",
    "hoa ly",
    "mẫu đơn",
    "kẻ ô",
    "ô vuông",
    "hình vuông",
    "song long",
    "long phụng",
    "ngũ phúc",
    "bát tiên",
    "chữ phúc",
    "chữ lộc",
    "chữ khang",
)
MAX_PATTERNS = 10


def strip_diacritics(text: str) -> str:
    """Remove combining marks and map Đ/đ to D/d.

    Đ has no decomposition in Unicode, so NFD alone leaves it in place.
    """
    text = text.replace("Đ", "D").replace("đ", "d")
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """Lower-case, diacritic-free copy used for substring matching."""
    return strip_diacritics(text.lower())


def extract_patterns(text: str) -> list[str]:
    """Find known decorative-pattern phrases in free text (at most 10)."""
    lowered = unicodedata.normalize("NFC", text.lower())
    found = [pattern for pattern in DECORATIVE_PATTERNS if pattern in lowered]
    return found[:MAX_PATTERNS]
