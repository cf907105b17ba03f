import io
import pytest
from werkzeug.datastructures import FileStorage
from app import create_app
from config import Config
from database import db
import auth

ADMIN_EMAIL = 'admin@example.com'
PASSWORD = 'secret123'


@pytest.fixture()
def app(tmp_path):
    class TestConfig(Config):
        TESTING = True
        WTF_CSRF_ENABLED = False
        SQLALCHEMY_DATABASE_URI = 'sqlite:///' + str(tmp_path / 'portal_test.db')
        ATTACHMENT_FOLDER = str(tmp_path / 'complaint-files')
        BOOTSTRAP_ADMIN_EMAIL = ADMIN_EMAIL
        BOOTSTRAP_ADMIN_PASSWORD = 'adminpass'
        ROLE_EMAIL_SHORTCUT = True
        MAIL_SUPPRESS_SEND = True
        MAIL_DEFAULT_SENDER = 'portal@example.com'
        JWT_SECRET = 'test'

    return create_app(TestConfig)


@pytest.fixture()
def app_ctx(app):
    # service-level tests; web tests go through the client instead
    with app.app_context():
        yield
        db.remove()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def db_session(app_ctx):
    return db


def make_identity(email, full_name='Test Student', password=PASSWORD):
    user = auth.sign_up(db, email, password, full_name)
    return auth.build_auth_context(db, user)


@pytest.fixture()
def student(app_ctx):
    return make_identity('alice@example.com', 'Alice Student')


@pytest.fixture()
def other_student(app_ctx):
    return make_identity('bob@example.com', 'Bob Student')


@pytest.fixture()
def admin(app_ctx):
    return make_identity(ADMIN_EMAIL, 'Admin')


def upload(data=b'%PDF-1.4 test', filename='report.pdf', content_type='application/pdf'):
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)


def login(client, email, password=PASSWORD):
    return client.post('/auth', data={'email': email, 'password': password})


def bearer(client, email, password=PASSWORD):
    r = client.post('/api/token', json={'email': email, 'password': password})
    assert r.status_code == 200, r.data
    return {'Authorization': f"Bearer {r.get_json()['token']}"}
