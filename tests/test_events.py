import pytest

from schemas import Role


@pytest.fixture
def event(client, teacher, headers_for):
    response = client.post('/api/events', headers=headers_for(teacher), json={
        'title': 'Science Fair', 'date': '2024-03-10', 'location': 'Gym', 'type': 'academic',
    })
    assert response.status_code == 201
    return response.json()['data']


def test_event_records_creator(event, teacher):
    assert event['created_by'] == str(teacher['_id'])
    assert event['date'] == '2024-03-10'


def test_events_listed_by_date(client, event, student, headers_for):
    client.post('/api/events', headers=headers_for(student), json={'title': 'Club day', 'date': '2024-02-01'})

    response = client.get('/api/events', headers=headers_for(student))

    assert [e['title'] for e in response.json()['data']] == ['Club day', 'Science Fair']


def test_creator_deletes_event(client, event, teacher, headers_for, db):
    response = client.delete(f"/api/events/{event['id']}", headers=headers_for(teacher))

    assert response.status_code == 200
    assert response.json()['message'] == 'Event deleted successfully'
    assert db['event'].count_documents({}) == 0


@pytest.mark.parametrize('role', [Role.TEACHER, Role.STUDENT, Role.PARENT])
def test_others_cannot_delete_event(client, event, make_user, headers_for, db, role):
    response = client.delete(f"/api/events/{event['id']}", headers=headers_for(make_user(role)))

    assert response.status_code == 403
    assert db['event'].count_documents({}) == 1


def test_admin_deletes_any_event(client, event, admin, headers_for, db):
    response = client.delete(f"/api/events/{event['id']}", headers=headers_for(admin))

    assert response.status_code == 200
    assert db['event'].count_documents({}) == 0


def test_delete_unknown_event(client, admin, headers_for):
    response = client.delete('/api/events/65a000000000000000000001', headers=headers_for(admin))

    assert response.status_code == 404
    assert response.json()['message'] == 'Event not found'
