"""Shared test helpers and database fixtures."""

import pytest
from sqlalchemy.orm import sessionmaker

from database import Base, build_engine
from models import Admin, Organization
from core.scope import Principal, compute_scope


@pytest.fixture
def engine(tmp_path):
    """A fresh SQLite file database per test (file-backed so two sessions can share it)."""
    engine = build_engine(f"sqlite:///{tmp_path / 'beer_vote_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def make_org(db, name: str) -> Organization:
    org = Organization(name=name)
    db.add(org)
    db.commit()
    return org


def make_admin(db, org: Organization, email: str, is_super: bool = False, linked: bool = True) -> Admin:
    """Create an admin; ``linked=False`` leaves it as a pending invite."""
    admin = Admin(
        email=email,
        organization_id=org.id,
        is_super=is_super,
        user_id=f"user-{email}" if linked else None,
    )
    db.add(admin)
    db.commit()
    return admin


def context_for(db, admin: Admin, model: str = "organization"):
    """Compute the AdminContext a request from this admin would get."""
    principal = Principal(user_id=admin.user_id or f"user-{admin.email}", email=admin.email)
    return compute_scope(db, principal, model)
