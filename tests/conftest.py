import time
import uuid
from types import SimpleNamespace

import jwt
import pytest
from sqlalchemy import text

from app import create_app, db
from app.config import TestConfig
from app.models import Grant, Organization, OrganizationSettings, OrgMember, UserProfile


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def foreign_keys(app):
    """SQLite leaves foreign keys unenforced unless asked; Postgres always enforces them."""
    db.session.commit()
    db.session.execute(text('PRAGMA foreign_keys=ON'))
    assert db.session.execute(text('PRAGMA foreign_keys')).scalar() == 1
    yield
    db.session.rollback()
    db.session.execute(text('PRAGMA foreign_keys=OFF'))


def make_token(user_id, email, full_name=None, expires_in=3600, secret=TestConfig.SUPABASE_JWT_SECRET,
               audience='authenticated'):
    payload = {
        'sub': user_id,
        'email': email,
        'aud': audience,
        'exp': int(time.time()) + expires_in,
        'user_metadata': {'full_name': full_name} if full_name else {},
    }
    return jwt.encode(payload, secret, algorithm='HS256')


@pytest.fixture()
def token_for():
    return make_token


@pytest.fixture()
def auth_headers():
    def _headers(user):
        return {'Authorization': f'Bearer {make_token(user.id, user.email, user.full_name)}'}
    return _headers


@pytest.fixture()
def make_user(app):
    def _make(email, full_name=None, is_platform_admin=False):
        user = UserProfile(
            id=str(uuid.uuid4()),
            email=email,
            full_name=full_name or email.split('@')[0].capitalize(),
            is_platform_admin=is_platform_admin,
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_org(app):
    def _make(name, admins=(), contributors=()):
        org = Organization(name=name)
        db.session.add(org)
        db.session.flush()
        db.session.add(OrganizationSettings(org_id=org.id))
        for user in admins:
            db.session.add(OrgMember(org_id=org.id, user_id=user.id, role='admin'))
        for user in contributors:
            db.session.add(OrgMember(org_id=org.id, user_id=user.id, role='contributor'))
        db.session.commit()
        return org
    return _make


@pytest.fixture()
def make_grant(app):
    def _make(org, user, title='Community Health Initiative', status='researching', **fields):
        grant = Grant(
            org_id=org.id,
            user_id=user.id,
            external_id=fields.pop('external_id', str(uuid.uuid4())[:8]),
            title=title,
            status=status,
            **fields
        )
        db.session.add(grant)
        db.session.commit()
        return grant
    return _make


@pytest.fixture()
def team(make_user, make_org, make_grant):
    """An org with one admin and two contributors, a saved grant, and an unrelated outsider."""
    alice = make_user('alice@example.org', 'Alice Admin')
    bob = make_user('bob@example.org', 'Bob Writer')
    carol = make_user('carol@example.org', 'Carol Reviewer')
    outsider = make_user('mallory@elsewhere.org', 'Mallory')
    org = make_org('Riverbend Food Bank', admins=[alice], contributors=[bob, carol])
    grant = make_grant(org, bob)
    return SimpleNamespace(org=org, alice=alice, bob=bob, carol=carol, outsider=outsider, grant=grant)
