import pytest

from foneflow import stats
from foneflow.errors import Unauthenticated
from foneflow.models import Role
from foneflow.schemas import FilterCriteria

from helpers import make_user, two_user_world


def test_admin_sees_everything():
    admin, _, _, c = two_user_world()
    assert stats.scope(admin, c) == c


def test_regular_user_sees_only_own_rows():
    _, alice, _, c = two_user_world()
    scoped = stats.scope(alice, c)

    assert scoped.users == (alice,)
    assert [card.id for card in scoped.cards] == ["card_a"]
    assert [o.id for o in scoped.orders] == ["o1", "o3"]
    assert [t.id for t in scoped.transactions] == ["t1"]
    for collection in (scoped.cards, scoped.orders, scoped.transactions):
        assert all(row.user_id == alice.id for row in collection)


def test_user_without_data_gets_empty_collections():
    _, _, _, c = two_user_world()
    newcomer = make_user(id="u2")
    scoped = stats.scope(newcomer, c)
    assert scoped.users == (newcomer,)
    assert scoped.cards == ()
    assert scoped.orders == ()
    assert scoped.transactions == ()


def test_missing_actor_is_unauthenticated():
    _, _, _, c = two_user_world()
    with pytest.raises(Unauthenticated):
        stats.scope(None, c)
    with pytest.raises(Unauthenticated):
        stats.build_dashboard(None, c)


def test_user_filter_cannot_reach_other_users_rows():
    _, alice, _, c = two_user_world()
    dash = stats.build_dashboard(alice, c, FilterCriteria(user_id="bob"))
    assert dash.orders == []
    assert dash.stats.total_phones == 0
    assert set(dash.card_bills) == {"card_a"}


def test_regular_user_dashboard_figures():
    _, alice, _, c = two_user_world()
    dash = stats.build_dashboard(alice, c, cashback_user_id="bob")

    assert dash.stats.total_phones == 2
    assert dash.stats.total_received == 700
    assert dash.stats.total_pending == 2500 - 700
    # Scoped orders are alice's only, whatever user the cashback selector names
    assert dash.cashback_total == 0
    assert stats.build_dashboard(alice, c).cashback_total == 150
    assert dash.dealers == ["all", "Mobile Hub"]
    assert [card.id for card in dash.card_options] == ["card_a"]


def test_admin_dashboard_resets_inconsistent_card_filter():
    admin, _, _, c = two_user_world()
    dash = stats.build_dashboard(admin, c, FilterCriteria(user_id="bob", card_id="card_a"))
    assert dash.criteria.card_id == "all"
    assert [row.id for row in dash.orders] == ["o2"]
    assert [card.id for card in dash.card_options] == ["card_b"]


def test_role_is_an_enum():
    assert {r.value for r in Role} == {"admin", "user"}


def test_unknown_role_is_rejected():
    _, alice, _, c = two_user_world()
    forged = alice.model_construct(**{**alice.model_dump(), "role": "superuser"})
    with pytest.raises(ValueError):
        stats.scope(forged, c)
