import io
from unittest.mock import patch
import pytest
from sqlalchemy.exc import OperationalError
from conftest import ADMIN_EMAIL, PASSWORD, bearer

DESCRIPTION = 'The lab wifi has been down since Monday morning'
WIFI = {'title': 'Wifi down', 'category': 'Technical', 'description': DESCRIPTION}


def register(client, email, full_name='Test Student'):
    r = client.post('/api/register', json={'email': email, 'password': PASSWORD, 'full_name': full_name})
    assert r.status_code == 201, r.data
    return r.get_json()


@pytest.fixture()
def alice(client):
    register(client, 'alice@example.com', 'Alice Student')
    return bearer(client, 'alice@example.com')


@pytest.fixture()
def bob(client):
    register(client, 'bob@example.com', 'Bob Student')
    return bearer(client, 'bob@example.com')


@pytest.fixture()
def admin_headers(client):
    register(client, ADMIN_EMAIL, 'Admin')
    return bearer(client, ADMIN_EMAIL)


def create(client, headers, **fields):
    r = client.post('/api/complaints', json={**WIFI, **fields}, headers=headers)
    assert r.status_code == 201, r.data
    return r.get_json()


def test_register_duplicate_and_bad_login(client):
    register(client, 'alice@example.com')
    r = client.post('/api/register', json={'email': 'alice@example.com', 'password': PASSWORD, 'full_name': 'Again'})
    assert r.status_code == 401
    assert r.get_json()['error'] == 'This email is already registered'
    r = client.post('/api/token', json={'email': 'alice@example.com', 'password': 'wrong-pass'})
    assert r.status_code == 401
    assert r.get_json()['error'] == 'Invalid email or password'


def test_register_invalid_email(client):
    r = client.post('/api/register', json={'email': 'nope', 'password': PASSWORD, 'full_name': 'Nope'})
    assert r.status_code == 400
    assert r.get_json()['error'] == 'Invalid email address'


def test_requires_token(client):
    assert client.get('/api/complaints').status_code == 401
    r = client.get('/api/complaints', headers={'Authorization': 'Bearer junk'})
    assert r.status_code == 401


def test_me_and_refresh(client, alice, admin_headers):
    me = client.get('/api/me', headers=alice).get_json()
    assert me['email'] == 'alice@example.com'
    assert me['is_admin'] is False
    assert me['roles'] == ['student']
    assert me['full_name'] == 'Alice Student'
    assert client.get('/api/me', headers=admin_headers).get_json()['is_admin'] is True

    r = client.post('/api/token/refresh', headers=alice)
    assert r.status_code == 200
    refreshed = {'Authorization': f"Bearer {r.get_json()['token']}"}
    assert client.get('/api/me', headers=refreshed).status_code == 200


def test_student_submission(client, alice):
    c = create(client, alice)
    assert c['status'] == 'Pending'
    assert c['admin_remarks'] is None
    assert c['file_url'] is None


def test_submission_validation_message(client, alice):
    r = client.post('/api/complaints', json={**WIFI, 'title': 'Wifi'}, headers=alice)
    assert r.status_code == 400
    assert r.get_json()['error'] == 'Title must be at least 5 characters'


def test_oversized_upload_creates_nothing(client, alice):
    data = {**WIFI, 'attachment': (io.BytesIO(b'0' * (15 * 1024 * 1024)), 'big.pdf', 'application/pdf')}
    r = client.post('/api/complaints', data=data, headers=alice, content_type='multipart/form-data')
    assert r.status_code in (400, 413)
    assert client.get('/api/complaints', headers=alice).get_json() == []


def test_upload_and_download(client, alice, bob, admin_headers):
    data = {**WIFI, 'attachment': (io.BytesIO(b'%PDF-1.4 hello'), 'scan.pdf', 'application/pdf')}
    r = client.post('/api/complaints', data=data, headers=alice, content_type='multipart/form-data')
    assert r.status_code == 201, r.data
    cid = r.get_json()['id']
    assert r.get_json()['file_url'].endswith('.pdf')

    r = client.get(f'/api/complaints/{cid}/attachment', headers=alice)
    assert r.status_code == 200
    assert r.data == b'%PDF-1.4 hello'
    assert client.get(f'/api/complaints/{cid}/attachment', headers=admin_headers).status_code == 200
    assert client.get(f'/api/complaints/{cid}/attachment', headers=bob).status_code == 404


def test_visibility(client, alice, bob, admin_headers):
    mine = create(client, alice)
    create(client, bob, title='Bob has a problem')

    listed = client.get('/api/complaints', headers=alice).get_json()
    assert [c['id'] for c in listed] == [mine['id']]
    # no hint that the row exists
    r = client.get(f"/api/complaints/{mine['id']}", headers=bob)
    assert r.status_code == 404

    everything = client.get('/api/complaints', headers=admin_headers).get_json()
    assert [c['title'] for c in everything] == ['Bob has a problem', 'Wifi down']
    assert everything[1]['profiles'] == {'full_name': 'Alice Student', 'email': 'alice@example.com'}


def test_admin_triage_flow(client, alice, admin_headers):
    c = create(client, alice)
    r = client.put(f"/api/complaints/{c['id']}", json={'status': 'Under Review', 'admin_remarks': 'Investigating'},
                   headers=admin_headers)
    assert r.status_code == 200
    assert r.get_json()['updated_at'] > c['updated_at']

    seen = client.get(f"/api/complaints/{c['id']}", headers=alice).get_json()
    assert seen['status'] == 'Under Review'
    assert seen['admin_remarks'] == 'Investigating'

    # the student lost write access once the complaint left Pending
    r = client.put(f"/api/complaints/{c['id']}", json={'title': 'Changed my mind'}, headers=alice)
    assert r.status_code == 403
    assert client.delete(f"/api/complaints/{c['id']}", headers=alice).status_code == 403

    r = client.put(f"/api/complaints/{c['id']}", json={'status': 'Resolved', 'admin_remarks': ''},
                   headers=admin_headers)
    assert r.get_json()['admin_remarks'] is None


def test_student_edit_and_withdraw(client, alice):
    c = create(client, alice)
    r = client.put(f"/api/complaints/{c['id']}", json={'title': 'Wifi still down'}, headers=alice)
    assert r.status_code == 200
    assert r.get_json()['title'] == 'Wifi still down'
    assert r.get_json()['status'] == 'Pending'

    assert client.delete(f"/api/complaints/{c['id']}", headers=alice).status_code == 200
    assert client.get(f"/api/complaints/{c['id']}", headers=alice).status_code == 404


def test_list_filters(client, alice, admin_headers):
    create(client, alice)
    other = create(client, alice, title='Exam schedule clash', category='Academic')
    client.put(f"/api/complaints/{other['id']}", json={'status': 'Resolved'}, headers=admin_headers)

    r = client.get('/api/complaints?status=Resolved', headers=admin_headers).get_json()
    assert [c['id'] for c in r] == [other['id']]
    r = client.get('/api/complaints?status=Pending&category=Academic', headers=admin_headers).get_json()
    assert r == []
    r = client.get('/api/complaints?category=Technical', headers=alice).get_json()
    assert [c['title'] for c in r] == ['Wifi down']


def test_setup_admin_is_idempotent(client):
    r = client.post('/setup-admin')
    assert r.get_json()['message'] == 'Admin account created successfully'
    r = client.post('/setup-admin')
    assert r.get_json()['message'] == 'Admin account already exists'
    r = client.post('/api/token', json={'email': ADMIN_EMAIL, 'password': 'adminpass'})
    assert r.status_code == 200


def test_database_outage_on_listing_returns_503(client, alice):
    down = OperationalError('SELECT complaints', {}, Exception('disk I/O error'))
    with patch('sqlalchemy.orm.Query.all', side_effect=down):
        r = client.get('/api/complaints', headers=alice)
    assert r.status_code == 503
    assert r.get_json()['error'] == 'The service is temporarily unavailable'
