import pytest

from schemas import Role


@pytest.fixture
def conversation(client, teacher, make_user, headers_for):
    parent = make_user(Role.PARENT)
    response = client.post('/api/messages/conversations', headers=headers_for(parent), json={
        'recipient': str(teacher['_id']),
        'subject': 'Homework',
        'initial_message': 'How is my child doing?',
    })
    assert response.status_code == 201
    return parent, response.json()['data']


def test_conversation_starts_with_first_message(conversation, teacher):
    parent, data = conversation

    assert data['participants'] == [str(parent['_id']), str(teacher['_id'])]
    [message] = data['messages']
    assert message['sender_id'] == str(parent['_id'])
    assert message['content'] == 'How is my child doing?'


def test_participant_replies(client, conversation, teacher, headers_for, db):
    _, data = conversation

    response = client.post(f"/api/messages/conversations/{data['id']}",
                           headers=headers_for(teacher), json={'content': 'Doing well.'})

    assert response.status_code == 201
    stored = db['conversation'].find_one({})
    assert [m['content'] for m in stored['messages']] == ['How is my child doing?', 'Doing well.']


def test_outsider_cannot_post(client, conversation, other_teacher, headers_for, db):
    _, data = conversation

    response = client.post(f"/api/messages/conversations/{data['id']}",
                           headers=headers_for(other_teacher), json={'content': 'Hello?'})

    assert response.status_code == 403
    assert response.json()['message'] == 'Not authorized to message in this conversation'
    assert len(db['conversation'].find_one({})['messages']) == 1


def test_list_only_own_conversations(client, conversation, teacher, other_teacher, headers_for):
    parent, data = conversation

    mine = client.get('/api/messages/conversations', headers=headers_for(teacher))
    theirs = client.get('/api/messages/conversations', headers=headers_for(other_teacher))

    [listed] = mine.json()['data']
    assert listed['id'] == data['id']
    assert {p['id'] for p in listed['participants']} == {str(parent['_id']), str(teacher['_id'])}
    assert theirs.json()['data'] == []


def test_cannot_message_self(client, teacher, headers_for):
    response = client.post('/api/messages/conversations', headers=headers_for(teacher), json={
        'recipient': str(teacher['_id']), 'subject': 'Note', 'initial_message': 'Reminder',
    })

    assert response.status_code == 400


def test_unknown_recipient(client, teacher, headers_for, db):
    response = client.post('/api/messages/conversations', headers=headers_for(teacher), json={
        'recipient': '65a000000000000000000001', 'subject': 'Note', 'initial_message': 'Hi',
    })

    assert response.status_code == 404
    assert db['conversation'].count_documents({}) == 0


def test_empty_message_rejected(client, conversation, teacher, headers_for):
    _, data = conversation

    response = client.post(f"/api/messages/conversations/{data['id']}",
                           headers=headers_for(teacher), json={'content': ''})

    assert response.status_code == 400
