"""Human-facing inventory ids such as ``AD-000007``.

The id is a pure function of (category, per-category counter) so the value
shown in the back office and the one rebuilt during a full reindex agree.
"""

from rentalsync.shared.text import strip_diacritics

CATEGORY_CODES: dict[str, str] = {
    "Áo Dài": "AD",
    "Áo": "AO",
    "Quần": "QU",
    "Văn Nghệ": "VN",
    "Đồ Tây": "DT",
    "Giầy": "GI",
    "Dụng Cụ": "DC",
    "Đầm Dạ Hội": "DH",
}
FALLBACK_CODE = "XX"
COUNTER_WIDTH = 6


def category_code(category: str | None) -> str:
    """Two-letter code for a category.

    Unknown categories use the initials of their words, diacritics removed:
    "Phụ Kiện Lạ" -> "PKL" -> "PK".
    """
    if category in CATEGORY_CODES:
        return CATEGORY_CODES[category]

    initials = "".join(word[0] for word in (category or "").split())
    code = strip_diacritics(initials).upper()[:2]
    return code or FALLBACK_CODE


def format_item_id(category: str | None, counter: int) -> str:
    return f"{category_code(category)}-{counter:0{COUNTER_WIDTH}d}"
