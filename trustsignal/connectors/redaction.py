"""Privacy redaction applied to provider free text before it leaves a connector."""
from typing import Optional

DESCRIPTION_MAX = 500
NARRATIVE_MAX = 1000
_ELLIPSIS = "..."


def truncate(text: Optional[str], max_len: int = DESCRIPTION_MAX) -> Optional[str]:
    if text is None:
        return None
    text = " ".join(text.split())
    if len(text) <= max_len:
        return text
    return text[: max_len - len(_ELLIPSIS)].rstrip() + _ELLIPSIS


def mask_postal_code(code: Optional[str]) -> Optional[str]:
    """Keep the first three characters: '94107' -> '941XX'."""
    if not code:
        return None
    code = code.strip()
    if len(code) < 3:
        return "XXX"
    return code[:3] + "XX"
