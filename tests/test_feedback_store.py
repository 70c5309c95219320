from datetime import datetime, timedelta, timezone

import pytest
from feedback_service.extensions import db
from feedback_service.models import Feedback
from feedback_service.services import feedback_store
from feedback_service.services.feedback_store import FeedbackFilter, normalize_paging

T0 = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)

def _make(people, employee_id, *, n=0, sentiment="positive", manager_id=None):
    return feedback_store.create(
        db.session,
        manager_id=manager_id or people.m,
        employee_id=employee_id,
        strengths=f"strength {n}",
        areas_to_improve=f"area {n}",
        sentiment=sentiment,
        now=T0 + timedelta(minutes=n),
    )

@pytest.mark.parametrize("args,expected", [
    ((1, 10, None, None), (1, 10, "createdAt", "desc")),
    ((0, 500, "sentiment", "ASC"), (1, 50, "sentiment", "asc")),
    (("x", "y", "created_at", "sideways"), (1, 10, "createdAt", "desc")),
    ((3, -4, "password", "asc"), (3, 1, "createdAt", "desc")),
])
def test_normalize_paging(args, expected):
    assert normalize_paging(*args) == expected

def test_create_starts_pending_at_version_one(ctx, people):
    fb = _make(people, people.e1)
    assert fb.id is not None
    assert fb.version == 1
    assert fb.is_acknowledged is False and fb.acknowledged_at is None
    assert fb.is_deleted is False and fb.deleted_at is None

def test_apply_edit_bumps_version_by_one(ctx, people):
    fb = _make(people, people.e1)
    feedback_store.apply_edit(db.session, fb, {"sentiment": "neutral"}, now=T0 + timedelta(hours=1))
    db.session.commit()
    fresh = db.session.get(Feedback, fb.id)
    assert fresh.version == 2 and fresh.sentiment == "neutral"

def test_find_mutable_applies_scope_filters(ctx, people):
    fb = _make(people, people.e1)
    db.session.commit()
    assert feedback_store.find_mutable(db.session, fb.id, manager_id=people.m, is_deleted=False) is not None
    assert feedback_store.find_mutable(db.session, fb.id, manager_id=people.m2) is None
    assert feedback_store.find_mutable(db.session, fb.id, employee_id=people.e2) is None
    assert feedback_store.find_mutable(db.session, fb.id, is_deleted=True) is None

def test_paginated_query_sorts_and_pages(ctx, people):
    for n in range(5):
        _make(people, people.e1, n=n)
    db.session.commit()

    page = feedback_store.paginated_query(db.session, FeedbackFilter(manager_id=people.m), page=2, limit=2)
    assert page.total == 5 and page.total_pages == 3
    assert [r.strengths for r in page.items] == ["strength 2", "strength 1"]
    assert page.meta() == {
        "current_page": 2,
        "total_pages": 3,
        "total_count": 5,
        "limit": 2,
        "has_next_page": True,
        "has_prev_page": True,
        "next_page": 3,
        "prev_page": 1,
    }

    asc = feedback_store.paginated_query(
        db.session, FeedbackFilter(manager_id=people.m), limit=10, sort_by="createdAt", sort_order="asc"
    )
    assert [r.strengths for r in asc.items][:2] == ["strength 0", "strength 1"]

def test_paginated_query_filters(ctx, people):
    _make(people, people.e1, n=0, sentiment="positive")
    b = _make(people, people.e2, n=1, sentiment="negative")
    gone = _make(people, people.e2, n=2, sentiment="negative")
    gone.is_deleted, gone.deleted_at = True, T0
    b.is_acknowledged, b.acknowledged_at = True, T0
    db.session.commit()

    neg = feedback_store.paginated_query(db.session, FeedbackFilter(sentiment="negative"))
    assert [r.id for r in neg.items] == [b.id]

    with_deleted = feedback_store.paginated_query(db.session, FeedbackFilter(sentiment="negative", include_deleted=True))
    assert with_deleted.total == 2

    acked = feedback_store.paginated_query(db.session, FeedbackFilter(is_acknowledged=True))
    assert [r.id for r in acked.items] == [b.id]

    # Unknown sentiment is ignored, not rejected
    everything = feedback_store.paginated_query(db.session, FeedbackFilter(sentiment="ecstatic"))
    assert everything.total == 2 and everything.filters["sentiment"] is None

def test_recent_employee_ids_window(ctx, people):
    _make(people, people.e1, n=0)
    _make(people, people.e2, n=0, manager_id=people.m2)
    db.session.commit()
    since = T0 - timedelta(hours=24)
    ids = feedback_store.recent_employee_ids(
        db.session, manager_id=people.m, employee_ids=[people.e1, people.e2], since=since
    )
    assert ids == [people.e1]
    later = feedback_store.recent_employee_ids(
        db.session, manager_id=people.m, employee_ids=[people.e1], since=T0 + timedelta(minutes=1)
    )
    assert later == []
    assert feedback_store.recent_employee_ids(db.session, manager_id=people.m, employee_ids=[], since=since) == []
