import pytest

from finance_tracker import create_app
from finance_tracker.errors import EmailDispatchError
from finance_tracker.models import db

PASSWORD = 'secret123'


class RecordingMailer:
    """Stands in for the Resend client; remembers every reset link it was asked to send."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send_password_reset(self, recipient, link, ttl_minutes=15):
        if self.fail:
            raise EmailDispatchError()
        self.sent.append({'to': recipient, 'link': link, 'ttl': ttl_minutes})


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def app(tmp_path, mailer):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'SECRET_KEY': 'test-secret',
        'APP_BASE_URL': 'http://testserver',
        'MAILER': mailer,
        'LOG_LEVEL': 'WARNING',
    })
    yield app
    if app.extensions['trend_pool'] is not None:
        app.extensions['trend_pool'].shutdown()
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def signup(app):
    """Return a factory that registers a user and hands back a logged-in client."""
    def _signup(email='asha@example.com', name='Asha'):
        c = app.test_client()
        res = c.post('/api/auth/register', json={
            'name': name, 'email': email, 'password': PASSWORD, 'confirmPassword': PASSWORD,
        })
        assert res.status_code == 201, res.get_json()
        res = c.post('/api/auth/login', json={'email': email, 'password': PASSWORD})
        assert res.status_code == 200, res.get_json()
        return c
    return _signup


@pytest.fixture
def auth_client(signup):
    return signup()


def category_id(c, name):
    for cat in c.get('/api/categories').get_json():
        if cat['name'] == name:
            return cat['id']
    raise AssertionError(f'no category named {name}')


def add_txn(c, category, amount, when, kind='EXPENSE', description='Entry', **extra):
    payload = {
        'amount': amount,
        'type': kind,
        'categoryId': category_id(c, category),
        'date': when.isoformat(),
        'description': description,
        **extra,
    }
    res = c.post('/api/transactions', json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()
