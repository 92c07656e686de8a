from datetime import datetime, timedelta

import pytest

from conftest import PASSWORD
from finance_tracker import auth
from finance_tracker.models import Category, Transaction, User, db

RESET_MESSAGE = {'message': 'If that email exists, a reset link has been sent'}


def _register(client, email='asha@example.com', password=PASSWORD, confirm=None):
    return client.post('/api/auth/register', json={
        'name': 'Asha', 'email': email, 'password': password, 'confirmPassword': confirm or password,
    })


class TestRegistration:
    def test_creates_user_with_default_categories(self, app, client):
        res = _register(client)
        assert res.status_code == 201
        user = res.get_json()['user']
        assert user['email'] == 'asha@example.com'
        assert set(user) == {'id', 'email', 'name'}

        with app.app_context():
            categories = Category.query.filter_by(user_id=user['id']).all()
            assert len(categories) == 14
            assert sum(c.type.value == 'INCOME' for c in categories) == 4
            assert sum(c.type.value == 'EXPENSE' for c in categories) == 10
            assert all(c.is_default for c in categories)
            assert Transaction.query.filter_by(user_id=user['id']).count() == 0

    def test_email_is_normalised(self, client):
        res = _register(client, email='Asha@Example.com')
        assert res.get_json()['user']['email'] == 'asha@example.com'

    def test_duplicate_email(self, client):
        _register(client)
        res = _register(client)
        assert res.status_code == 400
        assert res.get_json()['error'] == 'Email already registered'

    def test_password_confirmation(self, client):
        res = _register(client, confirm='different')
        assert res.status_code == 400
        assert res.get_json() == {'error': "Passwords don't match", 'field': 'confirmPassword'}

    def test_is_atomic(self, app, client, monkeypatch):
        def broken_category(**kwargs):
            raise RuntimeError('category insert failed')

        monkeypatch.setattr(auth, 'Category', broken_category)
        res = _register(client)
        assert res.status_code == 500
        assert res.get_json() == {'error': 'Something went wrong'}
        with app.app_context():
            assert User.query.count() == 0

        monkeypatch.undo()
        assert _register(client).status_code == 201


class TestSession:
    def test_login_logout(self, client):
        _register(client)
        assert client.get('/api/auth/me').status_code == 401

        res = client.post('/api/auth/login', json={'email': 'asha@example.com', 'password': PASSWORD})
        assert res.status_code == 200
        assert client.get('/api/auth/me').get_json()['user']['email'] == 'asha@example.com'

        assert client.post('/api/auth/logout').get_json() == {'success': True}
        assert client.get('/api/auth/me').status_code == 401

    def test_bad_credentials(self, client):
        _register(client)
        res = client.post('/api/auth/login', json={'email': 'asha@example.com', 'password': 'wrong-pass'})
        assert res.status_code == 401
        assert res.get_json() == {'error': 'Invalid credentials'}

    @pytest.mark.parametrize('method, path', [
        ('get', '/api/accounts'),
        ('post', '/api/accounts'),
        ('get', '/api/accounts/1'),
        ('put', '/api/accounts/1'),
        ('delete', '/api/accounts/1'),
        ('get', '/api/categories'),
        ('post', '/api/categories'),
        ('get', '/api/transactions'),
        ('post', '/api/transactions'),
        ('get', '/api/transactions/1'),
        ('put', '/api/transactions/1'),
        ('delete', '/api/transactions/1'),
        ('get', '/api/dashboard'),
    ])
    def test_protected_routes_require_session(self, client, method, path):
        res = getattr(client, method)(path, json={})
        assert res.status_code == 401
        assert res.get_json() == {'error': 'Unauthorized'}


class TestPasswordReset:
    def test_same_response_for_known_and_unknown_email(self, client, mailer):
        _register(client)
        known = client.post('/api/auth/forgot-password', json={'email': 'asha@example.com'})
        unknown = client.post('/api/auth/forgot-password', json={'email': 'ghost@example.com'})
        assert known.status_code == unknown.status_code == 200
        assert known.get_json() == unknown.get_json() == RESET_MESSAGE
        assert len(mailer.sent) == 1
        assert mailer.sent[0]['to'] == 'asha@example.com'

    def test_invalid_email(self, client):
        res = client.post('/api/auth/forgot-password', json={'email': 'nope'})
        assert res.status_code == 400
        assert res.get_json()['error'] == 'Invalid email address'

    def test_issues_token_and_link(self, app, client, mailer):
        _register(client)
        client.post('/api/auth/forgot-password', json={'email': 'asha@example.com'})
        with app.app_context():
            user = User.query.filter_by(email='asha@example.com').one()
            assert len(user.reset_token) == 64
            remaining = user.reset_token_expiry - datetime.now()
            assert timedelta(minutes=14) < remaining <= timedelta(minutes=15)
            assert mailer.sent[0]['link'] == f'http://testserver/reset-password/{user.reset_token}'

    def test_reset_is_single_use(self, app, client, mailer):
        _register(client)
        client.post('/api/auth/forgot-password', json={'email': 'asha@example.com'})
        token = mailer.sent[0]['link'].rsplit('/', 1)[1]
        payload = {'token': token, 'password': 'newpass1', 'confirmPassword': 'newpass1'}

        res = client.post('/api/auth/reset-password', json=payload)
        assert res.status_code == 200
        assert res.get_json() == {'message': 'Password reset successful'}

        again = client.post('/api/auth/reset-password', json=payload)
        assert again.status_code == 400
        assert again.get_json()['error'] == 'Invalid or expired reset token'

        with app.app_context():
            user = User.query.filter_by(email='asha@example.com').one()
            assert user.reset_token is None
            assert user.reset_token_expiry is None

        old = client.post('/api/auth/login', json={'email': 'asha@example.com', 'password': PASSWORD})
        assert old.status_code == 401
        new = client.post('/api/auth/login', json={'email': 'asha@example.com', 'password': 'newpass1'})
        assert new.status_code == 200

    def test_expired_token(self, app, client, mailer):
        _register(client)
        client.post('/api/auth/forgot-password', json={'email': 'asha@example.com'})
        with app.app_context():
            user = User.query.filter_by(email='asha@example.com').one()
            user.reset_token_expiry = datetime.now() - timedelta(seconds=1)
            token = user.reset_token
            db.session.commit()
        res = client.post('/api/auth/reset-password', json={
            'token': token, 'password': 'newpass1', 'confirmPassword': 'newpass1',
        })
        assert res.status_code == 400

    def test_email_failure_is_server_error(self, client, mailer):
        _register(client)
        mailer.fail = True
        res = client.post('/api/auth/forgot-password', json={'email': 'asha@example.com'})
        assert res.status_code == 500
        assert res.get_json() == {'error': 'Failed to send email'}
