from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

import reposcope.api.v1.auth as auth_module
from reposcope.db.models import User
from reposcope.services.github_oauth import generate_oauth_state, validate_oauth_state
from reposcope.services.tokens import decode_access_token


def test_auth_github_redirect_contains_valid_state(client: TestClient) -> None:
    response = client.get('/api/v1/auth/github', params={'next': '/dashboard'}, follow_redirects=False)
    assert response.status_code == 302
    location = response.headers['location']
    assert location.startswith('https://github.com/login/oauth/authorize')
    assert 'client_id=' in location

    state = parse_qs(urlparse(location).query)['state'][0]
    assert validate_oauth_state(state)['next'] == '/dashboard'


def test_auth_callback_rejects_invalid_state(client: TestClient) -> None:
    response = client.get('/api/v1/auth/callback?code=dummy&state=bad')
    assert response.status_code == 400
    assert response.json()['error']['code'] == 'BAD_REQUEST'


def test_auth_callback_upserts_user_and_redirects_with_token(
    client: TestClient, db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(auth_module, 'exchange_code_for_access_token', lambda code: 'mock-token')
    monkeypatch.setattr(
        auth_module,
        'fetch_github_user',
        lambda token: {'id': 900000002, 'login': 'oauth-test-user', 'name': 'OAuth Test', 'email': 'oauth@test.dev'},
    )

    state = generate_oauth_state('/dashboard')
    response = client.get(f'/api/v1/auth/callback?code=dummy&state={state}', follow_redirects=False)

    assert response.status_code == 302
    location = urlparse(response.headers['location'])
    assert location.path == '/dashboard'
    token = parse_qs(location.fragment)['access_token'][0]

    user = db_session.execute(select(User).where(User.open_id == 'github:900000002')).scalar_one()
    assert user.github_username == 'oauth-test-user'
    assert user.role == 'user'
    assert decode_access_token(token)['sub'] == str(user.id)


def test_auth_callback_keeps_existing_role(client: TestClient, db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    db_session.add(User(open_id='github:900000003', role='admin', email='old@test.dev'))
    db_session.commit()
    monkeypatch.setattr(auth_module, 'exchange_code_for_access_token', lambda code: 'mock-token')
    monkeypatch.setattr(auth_module, 'fetch_github_user', lambda token: {'id': 900000003, 'login': 'admin-user', 'email': None})

    state = generate_oauth_state('/dashboard')
    response = client.get(f'/api/v1/auth/callback?code=dummy&state={state}', follow_redirects=False)
    assert response.status_code == 302

    db_session.expire_all()
    user = db_session.execute(select(User).where(User.open_id == 'github:900000003')).scalar_one()
    assert user.role == 'admin'
    assert user.email == 'old@test.dev'
    assert user.github_username == 'admin-user'


def test_me_returns_current_user(client: TestClient, auth_headers: dict, user: User) -> None:
    response = client.get('/api/v1/auth/me', headers=auth_headers)
    assert response.status_code == 200
    assert response.json()['id'] == user.id
    assert response.json()['github_username'] == 'octocat'


def test_me_rejects_garbage_token(client: TestClient) -> None:
    response = client.get('/api/v1/auth/me', headers={'Authorization': 'Bearer nope'})
    assert response.status_code == 401


def test_logout(client: TestClient) -> None:
    response = client.post('/api/v1/auth/logout')
    assert response.status_code == 200
    assert response.json() == {'success': True}
