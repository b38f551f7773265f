import os

# must be set before config/database are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("SESSION_SECRET", "test-session")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base
from models import Role, User
from services import assignments, cutting, production
from services.stages import STITCHING, JEANS_ASSEMBLY, WASHING


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def db(engine):
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_user(db):
    roles = {}

    def _make(username: str, role: str) -> User:
        if role not in roles:
            r = db.query(Role).filter_by(name=role).first()
            if r is None:
                r = Role(name=role)
                db.add(r)
                db.flush()
            roles[role] = r
        u = User(username=username, password_hash="", role_id=roles[role].id, is_active=True)
        db.add(u)
        db.commit()
        db.refresh(u)
        return u

    return _make


@pytest.fixture()
def people(make_user):
    """One user per role. The cutting manager's name makes their lots denim (AK...)."""
    class People:
        manager = make_user("akash", "cutting_manager")
        hosiery_manager = make_user("kiran", "cutting_manager")
        operator = make_user("olga", "operator")
        stitcher = make_user("sara", "stitching_master")
        stitcher2 = make_user("sunil", "stitching_master")
        assembler = make_user("anil", "jeans_assembly")
        washer = make_user("wasim", "washing")
        washer_in = make_user("wendy", "washing_in")
        finisher = make_user("farah", "finishing")

    return People


def cut_lot(db, manager, sizes, layers=1, sku="SKU-1"):
    """Lot whose per-size total is pattern_count * layers."""
    return cutting.create_lot(
        db,
        manager=manager,
        sku=sku,
        sizes=sizes,
        rolls=[{"roll_no": "R1", "layers": layers}],
    )


def assign_and_approve(db, stage, *, assigner, assignee, source, sizes=None):
    a = assignments.create_assignment(db, stage, assigner=assigner, assignee_id=assignee.id,
                                      source=source, sizes=sizes)
    return assignments.approve(db, stage, assignment_id=a.id, approver_id=assignee.id)


def produce(db, stage, *, user, assignment, sizes):
    return production.create_production(db, stage, user_id=user.id, assignment_id=assignment.id, sizes=sizes)


def run_stage(db, stage, *, assigner, worker, source, sizes):
    a = assign_and_approve(db, stage, assigner=assigner, assignee=worker, source=source)
    return produce(db, stage, user=worker, assignment=a, sizes=sizes)


@pytest.fixture()
def denim_chain(db, people):
    """Denim lot (S:40, M:40) pushed through to washing, 40/40 at every step."""
    lot = cut_lot(db, people.manager, {"S": 1, "M": 1}, layers=40)
    st = run_stage(db, STITCHING, assigner=people.manager, worker=people.stitcher,
                   source=lot, sizes={"S": 40, "M": 40})
    ja = run_stage(db, JEANS_ASSEMBLY, assigner=people.stitcher, worker=people.assembler,
                   source=st, sizes={"S": 40, "M": 40})
    wd = run_stage(db, WASHING, assigner=people.assembler, worker=people.washer,
                   source=ja, sizes={"S": 40, "M": 40})
    return {"lot": lot, "stitching": st, "assembly": ja, "washing": wd}


