import time

from foneflow.auth import create_access_token, decode_access_token, user_id_from_token


def test_password_login_flow(client, admin):
    r = client.post('/auth/login', json={'email': 'admin@example.com', 'password': 'wrong'})
    assert r.status_code == 401

    r2 = client.post('/auth/login', json={'email': 'Admin@Example.com', 'password': 'adminpass'})
    assert r2.status_code == 200
    token = r2.json()['access_token']
    assert decode_access_token(token)['sub'] == admin.id
    assert decode_access_token(token)['role'] == 'admin'


def test_change_password(client, admin, admin_headers):
    r = client.put('/auth/password', json={'current_password': 'nope', 'new_password': 'secret99'}, headers=admin_headers)
    assert r.status_code == 400

    r = client.put('/auth/password', json={'current_password': 'adminpass', 'new_password': 'secret99'}, headers=admin_headers)
    assert r.status_code == 200

    assert client.post('/auth/login', json={'email': 'admin@example.com', 'password': 'adminpass'}).status_code == 401
    assert client.post('/auth/login', json={'email': 'admin@example.com', 'password': 'secret99'}).status_code == 200


def test_user_without_password_cannot_login(client, admin, admin_headers):
    client.post('/users', json={'name': 'NoPw', 'email': 'nopw@example.com'}, headers=admin_headers)
    r = client.post('/auth/login', json={'email': 'nopw@example.com', 'password': 'anything'})
    assert r.status_code == 401


def test_expired_token_rejected():
    token = create_access_token('abc', 'user', expires_delta=-10)
    assert user_id_from_token(token) is None
    fresh = create_access_token('abc', 'user')
    assert user_id_from_token(fresh) == 'abc'
    assert decode_access_token(fresh)['exp'] > int(time.time())


def test_secret_rotation_invalidates_tokens():
    from foneflow import config
    token = create_access_token('abc', 'user')
    original = config.get_settings()
    try:
        config.override(jwt_secret='rotated')
        assert user_id_from_token(token) is None
    finally:
        config.override(**original._asdict())
    assert user_id_from_token(token) == 'abc'


def test_seed_admin_from_settings(db_session):
    from foneflow import config, crud
    from foneflow.main import seed_admin
    original = config.get_settings()
    try:
        config.override(admin_email=None)
        assert seed_admin(db_session) is None  # nothing configured
        config.override(admin_email='owner@example.com', admin_password='ownerpass', admin_name='Owner')
        user = seed_admin(db_session)
        assert user.role == 'admin'
        assert crud.authenticate(db_session, 'owner@example.com', 'ownerpass') is not None
        # Only ever seeds an empty store
        assert seed_admin(db_session) is None
    finally:
        config.override(**original._asdict())
