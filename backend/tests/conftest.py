"""
Pytest fixtures for OnTrack backend tests.

Provides an in-memory application, per-test table clearing, and a
supervisor/student pair plus a local-time helper (UTC+8 civil offset).
"""

from datetime import date, datetime, timedelta

import pytest

from ontrack import create_app
from ontrack.extensions import db
from ontrack.models import Student, Supervisor
from ontrack.time_utils import civil_midnight


OFFSET_MINUTES = 480


def local(day: date, hhmm: str, seconds: int = 0) -> datetime:
    """UTC-naive instant for HH:MM local time on `day` (may roll past midnight as "25:30")."""
    hours, minutes = (int(p) for p in hhmm.split(":"))
    return civil_midnight(day, OFFSET_MINUTES) + timedelta(hours=hours, minutes=minutes, seconds=seconds)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ATTENDANCE_UTC_OFFSET_MINUTES': OFFSET_MINUTES,
        'ATTENDANCE_DUPLICATE_WINDOW_SECONDS': 15,
        'ATTENDANCE_STRICT_DUPLICATE_GUARD': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.config['ATTENDANCE_STRICT_DUPLICATE_GUARD'] = False


@pytest.fixture(scope='function')
def supervisor(db_session):
    sup = Supervisor(idnumber="SUP-001", firstname="Maria", lastname="Santos")
    db_session.add(sup)
    db_session.commit()
    return sup


@pytest.fixture(scope='function')
def student(db_session, supervisor):
    stu = Student(idnumber="2024-0001", firstname="Juan", lastname="Cruz", supervisor_id=supervisor.id)
    db_session.add(stu)
    db_session.commit()
    return stu


@pytest.fixture(scope='function')
def other_student(db_session):
    stu = Student(idnumber="2024-0002", firstname="Ana", lastname="Reyes")
    db_session.add(stu)
    db_session.commit()
    return stu
