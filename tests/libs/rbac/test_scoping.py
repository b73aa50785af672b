"""Row-level scoping tests, evaluated against in-memory records."""

from __future__ import annotations

from libs.rbac.permissions import Role
from libs.rbac.predicates import NOTHING, compile_sql, eq, matches
from libs.rbac.scoping import ACTIVE, identity_filter, order_filter, scoped

OWNER_ID = "o1"
MERCHANT_ID = "m1"
MEMBER_ID = "u1"

IDENTITIES = [
    {"id": OWNER_ID, "role": "owner", "parent": None, "active": True},
    {"id": MERCHANT_ID, "role": "merchant", "parent": None, "active": True},
    {"id": "m2", "role": "merchant", "parent": None, "active": True},
    {"id": MEMBER_ID, "role": "member", "parent": MERCHANT_ID, "active": True},
    {"id": "u2", "role": "member", "parent": "m2", "active": True},
    {"id": "u3", "role": "member", "parent": MERCHANT_ID, "active": False},
]

ORDERS = [
    {"order_id": "a1", "user": MEMBER_ID, "merchant": MERCHANT_ID, "active": True},
    {"order_id": "a2", "user": MERCHANT_ID, "merchant": MERCHANT_ID, "active": True},
    {"order_id": "b1", "user": "u2", "merchant": "m2", "active": True},
    {"order_id": "a3", "user": MEMBER_ID, "merchant": MERCHANT_ID, "active": False},
]


def visible_ids(predicate, records, key):  # type: ignore[no-untyped-def]
    return {record[key] for record in records if matches(predicate, record)}


class TestIdentityFilter:
    def test_owner_sees_every_active_identity(self) -> None:
        predicate = identity_filter(Role.OWNER, OWNER_ID)
        assert visible_ids(predicate, IDENTITIES, "id") == {
            OWNER_ID,
            MERCHANT_ID,
            "m2",
            MEMBER_ID,
            "u2",
        }

    def test_merchant_sees_itself_and_its_members(self) -> None:
        predicate = identity_filter(Role.MERCHANT, MERCHANT_ID)
        assert visible_ids(predicate, IDENTITIES, "id") == {MERCHANT_ID, MEMBER_ID}

    def test_member_sees_itself(self) -> None:
        predicate = identity_filter("member", MEMBER_ID)
        assert visible_ids(predicate, IDENTITIES, "id") == {MEMBER_ID}

    def test_unknown_role_or_missing_id_sees_nothing(self) -> None:
        assert identity_filter("admin", OWNER_ID) is NOTHING
        assert identity_filter(Role.OWNER, "") is NOTHING


class TestOrderFilter:
    def test_owner_sees_every_active_order(self) -> None:
        predicate = order_filter(Role.OWNER, OWNER_ID)
        assert visible_ids(predicate, ORDERS, "order_id") == {"a1", "a2", "b1"}

    def test_merchant_sees_attributed_orders(self) -> None:
        predicate = order_filter(Role.MERCHANT, MERCHANT_ID)
        assert visible_ids(predicate, ORDERS, "order_id") == {"a1", "a2"}

    def test_member_sees_own_orders(self) -> None:
        predicate = order_filter(Role.MEMBER, MEMBER_ID)
        assert visible_ids(predicate, ORDERS, "order_id") == {"a1"}

    def test_unknown_role_sees_nothing(self) -> None:
        assert order_filter(None, MEMBER_ID) is NOTHING


class TestScoped:
    def test_caller_terms_only_narrow(self) -> None:
        scope = order_filter(Role.MERCHANT, MERCHANT_ID)
        # A term naming another merchant intersects to the empty set
        predicate = scoped(scope, eq("merchant", "m2"))
        assert visible_ids(predicate, ORDERS, "order_id") == set()

    def test_no_terms_keeps_scope(self) -> None:
        scope = order_filter(Role.MEMBER, MEMBER_ID)
        assert scoped(scope) == scope

    def test_scope_is_first_conjunct_in_sql(self) -> None:
        columns = {"active": "is_active", "merchant": "merchant_id", "status": "status"}
        sql, params = compile_sql(
            scoped(order_filter(Role.MERCHANT, MERCHANT_ID), eq("status", "PENDING")), columns
        )
        assert sql == "(is_active = %s AND merchant_id = %s AND status = %s)"
        assert params == [True, MERCHANT_ID, "PENDING"]

    def test_nothing_scope_absorbs_terms(self) -> None:
        assert scoped(NOTHING, ACTIVE) is NOTHING
