from __future__ import annotations

import re
from typing import Iterable

_SUBTAG_SPLIT = re.compile(r"[-_]")


def primary_subtag(code: str | None) -> str:
    if not code:
        return ""
    return _SUBTAG_SPLIT.split(code.strip(), maxsplit=1)[0].lower()


def normalize_language(code: str | None, supported: Iterable[str], default: str) -> str:
    """Map a host language code such as ``de-AT`` to a supported catalog language."""
    lang = primary_subtag(code)
    return lang if lang in set(supported) else default
