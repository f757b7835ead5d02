"""
hierarchy.py — Which director owns a dashboard.

Resolution order for each real dashboard:

    1. Another director holding an explicit grant for the board (by id or
       original id) lends their title. Among several, a leaf director (one
       who does not supervise another candidate) wins; ties fall to the
       lowest user id.
    2. A director viewer with direct access to an orphan board (no group or
       GENERAL) claims it under their own title.
    3. The board's own group, matched against the official groups. A
       super-director viewer first tries their sub-groups (exact key, then
       substring either way). Unmatched boards fall back to GENERAL.

Relabelling returns new Dashboard values; inputs are never modified.
"""

import logging
from dataclasses import replace
from typing import Optional, Sequence

from .groups import FALLBACK_GROUP, GroupNormalizer, display_label
from .models import Dashboard, User

logger = logging.getLogger(__name__)


def leaf_directors(candidates: Sequence[User], normalizer: GroupNormalizer) -> list[User]:
    """Candidates that do not supervise any other candidate."""
    leaves = []
    for director in candidates:
        supervised = {normalizer.normalize(sg) for sg in director.sub_groups}
        if not any(
            other is not director and normalizer.normalize(other.director_title) in supervised
            for other in candidates
        ):
            leaves.append(director)
    return leaves


class HierarchyResolver:
    """Resolves the effective group of each dashboard for one pass.

    Args:
        users: All users of the snapshot.
        official_groups: Display labels of the official groups.
        normalizer: Group key normaliser.
        viewer: The acting user (None for a system pass).
        client_id: Restrict directors to one client.
        fallback_group: Label for boards matching no official group.
    """

    def __init__(
        self,
        users: Sequence[User],
        official_groups: Sequence[str],
        normalizer: Optional[GroupNormalizer] = None,
        viewer: Optional[User] = None,
        client_id: Optional[str] = None,
        fallback_group: str = FALLBACK_GROUP,
    ) -> None:
        self.normalizer = normalizer or GroupNormalizer()
        self.viewer = viewer
        self.fallback_group = fallback_group
        self.official_groups = list(official_groups)
        viewer_id = viewer.user_id if viewer is not None else None
        self.directors = sorted(
            (u for u in users
             if u.is_director and u.user_id != viewer_id and u.belongs_to(client_id)),
            key=lambda u: u.user_id,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def candidates(self, dashboard: Dashboard) -> list[User]:
        return [d for d in self.directors if d.has_access(dashboard)]

    def owner(self, dashboard: Dashboard) -> Optional[User]:
        """Director whose title labels the board, if any holds a grant."""
        candidates = self.candidates(dashboard)
        if not candidates:
            return None
        leaves = leaf_directors(candidates, self.normalizer)
        if not leaves:
            logger.warning(
                "No leaf director among %s for dashboard %s, using %s",
                [c.user_id for c in candidates], dashboard.id, candidates[0].user_id,
            )
        return leaves[0] if leaves else candidates[0]

    def _official(self, key: str) -> Optional[str]:
        return next(
            (g for g in self.official_groups if self.normalizer.normalize(g) == key),
            None,
        )

    def _sub_group(self, key: str) -> Optional[str]:
        subs = self.viewer.sub_groups if self.viewer is not None else []
        exact = next((sg for sg in subs if self.normalizer.normalize(sg) == key), None)
        if exact is not None:
            return exact
        return next(
            (sg for sg in subs
             if self.normalizer.normalize(sg) in key or key in self.normalizer.normalize(sg)),
            None,
        )

    def resolve(self, dashboard: Dashboard) -> str:
        """Effective group label of one dashboard."""
        owner = self.owner(dashboard)
        if owner is not None and owner.director_title:
            return display_label(owner.director_title)

        viewer = self.viewer
        if viewer is not None and viewer.is_director and viewer.director_title:
            orphan = self.normalizer.normalize(dashboard.group) == FALLBACK_GROUP
            if orphan and viewer.has_access(dashboard):
                return display_label(viewer.director_title)

        key = self.normalizer.normalize(dashboard.group or FALLBACK_GROUP)
        if viewer is not None and viewer.is_super_director:
            matched = self._sub_group(key)
            if matched is not None:
                return display_label(matched)

        official = self._official(key)
        return official if official is not None else self.fallback_group

    def relabel(self, dashboards: Sequence[Dashboard]) -> list[Dashboard]:
        """New dashboards carrying their resolved group."""
        relabelled = [replace(d, group=self.resolve(d)) for d in dashboards]
        logger.debug("Relabelled %d dashboards", len(relabelled))
        return relabelled
