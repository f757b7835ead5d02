"""
test_groups.py — Unit tests for group-label normalisation.

Tests cover:
    - Accent / case / whitespace folding and idempotence
    - Optional hierarchy-prefix stripping
    - First-seen display-label cache
    - Official group derivation (order independence, viewer scoping)
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from scorecard.groups import (
    FALLBACK_GROUP,
    GroupLabelCache,
    GroupNormalizer,
    display_label,
    normalize_group,
    official_groups,
)
from scorecard.models import Dashboard, DashboardRole, GlobalRole, RealId, User

SAMPLES = [
    "Dirección Sur", "DIRECCION   SUR", "  direccion   sur ", "Ñandú Norte",
    "ÁREA  técnica", "", "   ", "GENERAL", "Über\tGroup", "dirección de dirección sur",
]


def _director(user_id, title, **kw):
    return User(user_id=user_id, global_role=GlobalRole.DIRECTOR, director_title=title, **kw)


class TestNormalize:
    """Tests for normalize_group / GroupNormalizer."""

    def test_variants_collapse(self):
        assert normalize_group("Dirección Sur") == normalize_group("DIRECCION   SUR")
        assert normalize_group("  direccion   sur ") == "DIRECCION SUR"

    @pytest.mark.parametrize("label", SAMPLES)
    def test_idempotent(self, label):
        once = normalize_group(label)
        assert normalize_group(once) == once

    @pytest.mark.parametrize("label", SAMPLES)
    def test_idempotent_with_prefixes(self, label):
        normalizer = GroupNormalizer(["Dirección", "Director"])
        once = normalizer.normalize(label)
        assert normalizer.normalize(once) == once

    def test_empty_maps_to_general(self):
        assert normalize_group("") == FALLBACK_GROUP
        assert normalize_group(None) == FALLBACK_GROUP

    def test_prefix_stripping(self):
        normalizer = GroupNormalizer(["DIRECCION"])
        assert normalizer.normalize("Dirección Sur") == "SUR"
        assert normalizer.normalize("Dirección de Sur") == "SUR"
        assert normalizer.same("Dirección Sur", "sur")

    def test_prefix_alone_is_kept(self):
        assert GroupNormalizer(["DIRECCION"]).normalize("Dirección") == "DIRECCION"

    def test_default_keeps_prefixes(self):
        assert normalize_group("Dirección Sur") != normalize_group("Sur")

    def test_display_label_keeps_accents(self):
        assert display_label("  Dirección   sur ") == "DIRECCIÓN SUR"
        assert display_label(None) == ""


class TestGroupLabelCache:
    """Tests for GroupLabelCache."""

    def test_first_variant_is_retained(self):
        cache = GroupLabelCache()
        assert cache.remember("Dirección Sur") == "Dirección Sur"
        assert cache.remember("DIRECCION SUR") == "Dirección Sur"
        assert len(cache) == 1
        assert "direccion  sur" in cache
        assert cache.display("DIRECCION SUR") == "Dirección Sur"


class TestOfficialGroups:
    """Tests for official_groups."""

    def _users(self):
        return [
            _director("u2", "Dirección Sur", client_id="ACME"),
            _director("u1", "DIRECCION SUR", client_id="ACME"),
            _director("u3", "Norte", client_id="ACME"),
            _director("u4", "Este", client_id="GLOBEX"),
            User(user_id="u5", global_role=GlobalRole.MEMBER, director_title="Oeste"),
        ]

    def test_deduplicated_by_key_lowest_user_id_wins(self):
        assert official_groups(self._users()) == ["DIRECCION SUR", "NORTE", "ESTE"]

    def test_order_independent(self):
        assert official_groups(list(reversed(self._users()))) == official_groups(self._users())

    def test_client_filter(self):
        assert official_groups(self._users(), client_id="acme") == ["DIRECCION SUR", "NORTE"]

    def test_admin_viewer_sees_all(self):
        admin = User(user_id="a", global_role=GlobalRole.ADMIN)
        assert len(official_groups(self._users(), viewer=admin)) == 3

    def test_director_viewer_scoped(self):
        viewer = _director("u3", "Norte")
        assert official_groups(self._users(), viewer=viewer) == ["NORTE"]

    def test_viewer_sees_sub_groups_and_granted_boards(self):
        viewer = _director("u9", "Operaciones", sub_groups=["Norte"],
                           dashboard_access={"7": DashboardRole.VIEWER})
        boards = [Dashboard(id=RealId(7), title="x", group="Este")]
        groups = official_groups(self._users(), viewer=viewer, dashboards=boards)
        assert groups == ["NORTE", "ESTE", "OPERACIONES"]
