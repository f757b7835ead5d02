"""
groups.py — Group-label normalisation.

Group and director-title strings are typed by hand, so "Dirección Sur",
"DIRECCION SUR" and "  direccion   sur " must collapse to one key. The key is
only ever used for matching; the first pretty variant seen is kept for
display.
"""

import logging
import re
import unicodedata
from typing import Iterable, Optional, Sequence

from .models import Dashboard, User

logger = logging.getLogger(__name__)

FALLBACK_GROUP = "GENERAL"


def _fold(label: str) -> str:
    text = unicodedata.normalize("NFD", str(label).upper())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return " ".join(text.split())


def display_label(label: Optional[str]) -> str:
    """Upper-cased, whitespace-collapsed label, accents kept."""
    return " ".join(str(label or "").split()).upper()


class GroupNormalizer:
    """Canonical group keys.

    Args:
        strip_prefixes: Leading hierarchy words (e.g. "DIRECCION") removed
            from keys so "Dirección Sur" and "Sur" collapse too. Empty by
            default.
    """

    def __init__(self, strip_prefixes: Iterable[str] = ()) -> None:
        words = [_fold(p) for p in strip_prefixes if p and _fold(p)]
        self._prefix = (
            re.compile(r"^(?:%s)(?:\s+DE)?\s+" % "|".join(re.escape(w) for w in words))
            if words else None
        )

    def normalize(self, label: Optional[str]) -> str:
        """Key of ``label``; empty labels map to GENERAL.

        Idempotent: ``normalize(normalize(x)) == normalize(x)``.
        """
        key = _fold(label or "")
        if self._prefix is not None:
            while True:
                stripped = self._prefix.sub("", key, count=1)
                if stripped == key:
                    break
                key = stripped
        return key or FALLBACK_GROUP

    def same(self, a: Optional[str], b: Optional[str]) -> bool:
        return self.normalize(a) == self.normalize(b)


_DEFAULT = GroupNormalizer()


def normalize_group(label: Optional[str]) -> str:
    """Key of ``label`` without prefix stripping."""
    return _DEFAULT.normalize(label)


class GroupLabelCache:
    """First-seen display label per normalised key (presentation cache)."""

    def __init__(self, normalizer: Optional[GroupNormalizer] = None) -> None:
        self.normalizer = normalizer or _DEFAULT
        self._labels: dict[str, str] = {}

    def remember(self, label: str) -> str:
        key = self.normalizer.normalize(label)
        return self._labels.setdefault(key, label)

    def display(self, key: str) -> Optional[str]:
        return self._labels.get(key)

    def labels(self) -> list[str]:
        return list(self._labels.values())

    def __contains__(self, label: str) -> bool:
        return self.normalizer.normalize(label) in self._labels

    def __len__(self) -> int:
        return len(self._labels)


def official_groups(
    users: Sequence[User],
    normalizer: Optional[GroupNormalizer] = None,
    client_id: Optional[str] = None,
    viewer: Optional[User] = None,
    dashboards: Sequence[Dashboard] = (),
) -> list[str]:
    """Official group labels, derived from directors' titles.

    Directors are visited in user-id order so the retained display label does
    not depend on fetch order. For a non-admin viewer the list is narrowed to
    their own title, their sub-groups and the groups of boards they hold
    grants for; their own title is always included.

    Returns:
        Deduplicated display labels.
    """
    normalizer = normalizer or _DEFAULT
    cache = GroupLabelCache(normalizer)
    directors = sorted(
        (u for u in users if u.is_director and u.director_title and u.belongs_to(client_id)),
        key=lambda u: u.user_id,
    )
    for director in directors:
        cache.remember(display_label(director.director_title))
    groups = cache.labels()

    if viewer is None or viewer.is_admin:
        return groups

    own = normalizer.normalize(viewer.director_title or viewer.group or "")
    subs = {normalizer.normalize(sg) for sg in viewer.sub_groups}
    accessible = {
        normalizer.normalize(d.group) for d in dashboards if d.group and viewer.has_access(d)
    }
    groups = [
        g for g in groups
        if normalizer.normalize(g) == own or normalizer.normalize(g) in subs
        or normalizer.normalize(g) in accessible
    ]
    if viewer.director_title and not any(normalizer.normalize(g) == own for g in groups):
        groups.append(display_label(viewer.director_title))
    logger.debug("Official groups for viewer %s: %s", viewer.user_id, groups)
    return groups
