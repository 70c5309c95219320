import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from feedback_service import create_app
from feedback_service.extensions import db
from feedback_service.models import User, Team, TeamMember
from feedback_service.services.access import Principal
from feedback_service.services.export_limiter import ExportRateLimiter
from feedback_service.services.lifecycle import FeedbackLifecycle

@pytest.fixture(scope="session")
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "RATELIMIT_ENABLED": False,
        "EXPORT_RATE_LIMIT": "5 per hour",
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture()
def runner(app):
    return app.test_cli_runner()

def _wipe(app):
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
    app.extensions["export_rate_limiter"].reset_all()

@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    _wipe(app)
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    _wipe(app)

@pytest.fixture()
def ctx(app):
    """Hold one app context (and so one db.session) for the whole test."""
    with app.app_context():
        yield
        db.session.rollback()


def _user(email, role, active=True):
    u = User(email=email, name=email.split("@")[0].title(), role=role, is_active=active)
    db.session.add(u)
    return u

@pytest.fixture()
def people(app):
    """
    admin; manager `m` runs team Platform (e1, e2, inactive e_gone);
    manager `m2` runs team Payments (e3). Ids plus ready-made principals.
    """
    with app.app_context():
        admin = _user("ada@example.test", "admin")
        m = _user("mina@example.test", "manager")
        m2 = _user("omar@example.test", "manager")
        e1 = _user("eli@example.test", "employee")
        e2 = _user("eva@example.test", "employee")
        e3 = _user("ezra@example.test", "employee")
        e_gone = _user("gone@example.test", "employee", active=False)
        db.session.flush()

        platform = Team(name="Platform", manager_id=m.id, is_active=True)
        payments = Team(name="Payments", manager_id=m2.id, is_active=True)
        db.session.add_all([platform, payments])
        db.session.flush()
        db.session.add_all([
            TeamMember(team_id=platform.id, employee_id=e1.id),
            TeamMember(team_id=platform.id, employee_id=e2.id),
            TeamMember(team_id=platform.id, employee_id=e_gone.id),
            TeamMember(team_id=payments.id, employee_id=e3.id),
        ])
        ns = SimpleNamespace(
            admin=admin.id, m=m.id, m2=m2.id, e1=e1.id, e2=e2.id, e3=e3.id, e_gone=e_gone.id,
            platform=platform.id, payments=payments.id,
        )
        db.session.commit()

    ns.as_admin = Principal(ns.admin, "admin")
    ns.as_m = Principal(ns.m, "manager")
    ns.as_m2 = Principal(ns.m2, "manager")
    ns.as_e1 = Principal(ns.e1, "employee")
    ns.as_e2 = Principal(ns.e2, "employee")
    ns.as_e3 = Principal(ns.e3, "employee")
    return ns


class FrozenClock:
    def __init__(self, start):
        self.current = start
    def __call__(self):
        return self.current
    def advance(self, **kw):
        self.current += timedelta(**kw)

@pytest.fixture()
def clock():
    return FrozenClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))

@pytest.fixture()
def export_limiter():
    return ExportRateLimiter("memory://", "2 per hour")

@pytest.fixture()
def lifecycle(ctx, clock, export_limiter):
    return FeedbackLifecycle(db.session, rate_limiter=export_limiter, now=clock)

def naive(dt):
    """SQLite hands datetimes back without tzinfo."""
    return dt.replace(tzinfo=None) if dt is not None else None

def login(client, user_id):
    with client.session_transaction() as sess:
        sess["_user_id"] = str(user_id)
        sess["_fresh"] = True
