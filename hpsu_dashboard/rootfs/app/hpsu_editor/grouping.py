from __future__ import annotations

import logging
from functools import reduce
from typing import Iterable, Mapping

from . import settings
from .catalog import DEFAULT_CATEGORY, SlotDefinition

_LOGGER = logging.getLogger(__name__)


Groups = dict[str, list[SlotDefinition]]


class MissingCategoryLabel(Exception):
    def __init__(self, message: str, status_code: int = 422) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


def resolve_label(
    labels: Mapping[str, str],
    language: str,
    *,
    fallback_language: str | None = None,
    strict: bool = False,
) -> str:
    """Return the label for ``language``.

    A missing label raises ``MissingCategoryLabel`` in strict mode and yields
    the placeholder label otherwise. ``fallback_language`` is only consulted
    when explicitly configured.
    """
    if language in labels:
        return labels[language]
    if fallback_language and fallback_language in labels:
        return labels[fallback_language]
    if strict:
        raise MissingCategoryLabel(f"Category {dict(labels)!r} has no '{language}' label.")
    _LOGGER.warning("Category %r has no '%s' label, using placeholder", dict(labels), language)
    return settings.MISSING_LABEL


def group_by_category(
    slots: Iterable[SlotDefinition],
    language: str,
    *,
    fallback_language: str | None = None,
    strict: bool = False,
    default_category: Mapping[str, str] = DEFAULT_CATEGORY,
) -> Groups:
    def step(acc: tuple[Mapping[str, str], Groups], slot: SlotDefinition) -> tuple[Mapping[str, str], Groups]:
        last_category, groups = acc
        category = slot.category if slot.category is not None else last_category
        label = resolve_label(category, language, fallback_language=fallback_language, strict=strict)
        groups.setdefault(label, []).append(slot)
        return category, groups

    _, groups = reduce(step, slots, (default_category, {}))
    return groups
