import pytest

from schemas import Role


@pytest.fixture
def enrolled_class(make_class, teacher, student):
    return make_class(teacher, students=[student])


def mark(client, headers, class_doc, student, status='present', day='2024-01-15'):
    return client.post('/api/attendance', headers=headers, json={
        'class_id': str(class_doc['_id']),
        'student_id': str(student['_id']),
        'date': day,
        'status': status,
    })


def test_mark_attendance(client, teacher, student, enrolled_class, headers_for, db):
    response = mark(client, headers_for(teacher), enrolled_class, student)

    assert response.status_code == 200
    assert response.json()['data']['status'] == 'present'
    assert db['attendance'].count_documents({}) == 1


def test_remarking_same_day_updates_single_record(client, teacher, student, enrolled_class, headers_for, db):
    headers = headers_for(teacher)
    first = mark(client, headers, enrolled_class, student, status='present')

    second = mark(client, headers, enrolled_class, student, status='late')

    assert second.json()['data']['id'] == first.json()['data']['id']
    records = list(db['attendance'].find({}))
    assert len(records) == 1
    assert records[0]['status'] == 'late'


def test_each_day_gets_its_own_record(client, teacher, student, enrolled_class, headers_for, db):
    headers = headers_for(teacher)

    mark(client, headers, enrolled_class, student, day='2024-01-15')
    mark(client, headers, enrolled_class, student, day='2024-01-16')

    assert db['attendance'].count_documents({}) == 2


def test_student_not_in_class(client, teacher, make_user, enrolled_class, headers_for, db):
    outsider = make_user(Role.STUDENT)

    response = mark(client, headers_for(teacher), enrolled_class, outsider)

    assert response.status_code == 400
    assert response.json()['message'] == 'Student does not belong to this class'
    assert db['attendance'].count_documents({}) == 0


def test_other_teacher_cannot_mark(client, other_teacher, student, enrolled_class, headers_for, db):
    response = mark(client, headers_for(other_teacher), enrolled_class, student)

    assert response.status_code == 403
    assert db['attendance'].count_documents({}) == 0


def test_invalid_status(client, teacher, student, enrolled_class, headers_for):
    response = mark(client, headers_for(teacher), enrolled_class, student, status='excused')

    assert response.status_code == 400


def test_student_cannot_mark(client, student, enrolled_class, headers_for):
    response = mark(client, headers_for(student), enrolled_class, student)

    assert response.status_code == 403


def test_class_attendance_for_day(client, teacher, student, enrolled_class, headers_for):
    headers = headers_for(teacher)
    mark(client, headers, enrolled_class, student, day='2024-01-15', status='absent')
    mark(client, headers, enrolled_class, student, day='2024-01-16')

    response = client.get(f"/api/attendance/{enrolled_class['_id']}/2024-01-15", headers=headers)

    [record] = response.json()['data']
    assert record['status'] == 'absent'
    assert record['student']['id'] == str(student['_id'])


def test_class_attendance_bad_date(client, teacher, enrolled_class, headers_for):
    response = client.get(f"/api/attendance/{enrolled_class['_id']}/yesterday", headers=headers_for(teacher))

    assert response.status_code == 400


def test_other_teacher_cannot_read_class_attendance(client, teacher, other_teacher, student, enrolled_class,
                                                    headers_for):
    mark(client, headers_for(teacher), enrolled_class, student)

    response = client.get(f"/api/attendance/{enrolled_class['_id']}/2024-01-15", headers=headers_for(other_teacher))

    assert response.status_code == 403
    assert response.json()['message'] == 'Not authorized to manage this class'


def test_admin_reads_any_class_attendance(client, teacher, admin, student, enrolled_class, headers_for):
    mark(client, headers_for(teacher), enrolled_class, student)

    response = client.get(f"/api/attendance/{enrolled_class['_id']}/2024-01-15", headers=headers_for(admin))

    assert response.status_code == 200
    assert len(response.json()['data']) == 1


def test_attendance_for_unknown_class(client, admin, headers_for):
    response = client.get('/api/attendance/65a000000000000000000001/2024-01-15', headers=headers_for(admin))

    assert response.status_code == 404
