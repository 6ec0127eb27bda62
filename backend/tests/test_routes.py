# Overview: Pytest coverage for the HTTP surface (status codes and payload shapes).

from datetime import date, timedelta

from conftest import local
from ontrack.services import punch_service
from ontrack.time_utils import to_epoch_ms


DAY = date(2026, 3, 2)


def post_punch(client, idnumber, kind, when, **extra):
    return client.post('/api/attendance', json={
        'idnumber': idnumber,
        'type': kind,
        'ts': to_epoch_ms(when),
        **extra,
    })


class TestAttendanceRoutes:
    def test_punch_in_and_out(self, client, db_session, student):
        resp = post_punch(client, student.idnumber, 'in', local(DAY, '07:45'))
        assert resp.status_code == 201
        assert resp.json['accepted'] is True
        assert resp.json['computed_hours'] is None

        resp = post_punch(client, student.idnumber, 'out', local(DAY, '12:30'))
        assert resp.status_code == 201
        assert resp.json['computed_hours'] == 4.0

    def test_immediate_duplicate_is_409(self, client, db_session, student):
        post_punch(client, student.idnumber, 'in', local(DAY, '08:00'))
        resp = post_punch(client, student.idnumber, 'in', local(DAY, '08:00'))
        assert resp.status_code == 409
        assert resp.json == {
            'accepted': False,
            'punch_id': None,
            'computed_hours': None,
            'reason': 'duplicate_request',
        }

    def test_unknown_student_is_404(self, client, db_session):
        resp = post_punch(client, 'ghost', 'in', local(DAY, '08:00'))
        assert resp.status_code == 404
        assert resp.json['reason'] == 'subject_not_found'

    def test_bad_kind_is_400(self, client, db_session, student):
        resp = post_punch(client, student.idnumber, 'nap', local(DAY, '08:00'))
        assert resp.status_code == 400
        assert resp.json['reason'] == 'invalid_punch'

    def test_list_and_validate(self, client, db_session, student):
        created = post_punch(client, student.idnumber, 'in', local(DAY, '08:00')).json

        resp = client.get(f'/api/attendance?idnumber={student.idnumber}&start={DAY.isoformat()}')
        assert resp.status_code == 200
        rows = resp.json['attendance']
        assert len(rows) == 1
        assert rows[0]['type'] == 'in'
        assert rows[0]['ts'] == to_epoch_ms(local(DAY, '08:00'))

        resp = client.patch(f"/api/attendance/{created['punch_id']}/status", json={
            'status': 'validated', 'validated_by': 'SUP-001',
        })
        assert resp.status_code == 200
        assert resp.json['punch']['status'] == 'validated'

        resp = client.patch(f"/api/attendance/{created['punch_id']}/status", json={'status': 'raw'})
        assert resp.status_code == 409

        resp = client.patch('/api/attendance/99999/status', json={'status': 'validated'})
        assert resp.status_code == 404

    def test_admin_correction(self, client, db_session, student):
        post_punch(client, student.idnumber, 'in', local(DAY, '08:00'))
        out = post_punch(client, student.idnumber, 'out', local(DAY, '11:00')).json

        resp = client.patch(f"/api/attendance/{out['punch_id']}", json={
            'ts': to_epoch_ms(local(DAY, '12:00')), 'edited_by': 'ADMIN-1',
        })
        assert resp.status_code == 200
        assert resp.json['punch']['status'] == 'adjusted'

        ledger = client.get(f'/api/ledger?idnumber={student.idnumber}').json
        assert ledger['entries'][0]['hours'] == 4.0
        assert ledger['entries'][0]['status'] == 'ADJUSTED'

    def test_correction_into_taken_bucket_is_409(self, app, client, db_session, student):
        app.config['ATTENDANCE_STRICT_DUPLICATE_GUARD'] = True
        punch_service.record_punch(
            subject=student.idnumber, kind='in',
            instant_ms=to_epoch_ms(local(DAY, '08:00')), received_at=local(DAY, '08:00'),
        )
        later = post_punch(client, student.idnumber, 'in', local(DAY, '13:00')).json

        resp = client.patch(f"/api/attendance/{later['punch_id']}", json={
            'ts': to_epoch_ms(local(DAY, '08:00', seconds=3)),
        })
        assert resp.status_code == 409
        assert resp.json['reason'] == 'duplicate_request'

    def test_day_summary(self, client, db_session, student):
        post_punch(client, student.idnumber, 'in', local(DAY, '08:05'))
        resp = client.get(f'/api/attendance/summary?idnumber={student.idnumber}&date={DAY.isoformat()}')
        assert resp.status_code == 200
        summary = resp.json['summary']
        assert summary['date'] == DAY.isoformat()
        assert summary['sessions'][0]['virtual_out'] is True

    def test_summary_requires_dates(self, client, db_session, student):
        resp = client.get(f'/api/attendance/summary?idnumber={student.idnumber}')
        assert resp.status_code == 400
        resp = client.get(f'/api/attendance/summary?idnumber={student.idnumber}&date=03/02/2026')
        assert resp.status_code == 400


class TestShiftRoutes:
    def test_global_schedule_round_trip(self, client, db_session):
        resp = client.post('/api/shifts', json={
            'am_in': '07:30', 'am_out': '11:30', 'pm_in': '12:30', 'pm_out': '16:30',
            'ot_in': '22:00', 'ot_out': '02:00',
        })
        assert resp.status_code == 200

        resp = client.get(f'/api/shifts?date={DAY.isoformat()}')
        assert resp.status_code == 200
        body = resp.json
        assert body['shifts']['config']['am_in'] == '07:30'
        assert body['shifts']['sources']['am_in'] == 'global'
        assert body['schedule']['ot_end'] == to_epoch_ms(local(DAY + timedelta(days=1), '02:00'))

    def test_malformed_time_is_400(self, client, db_session):
        resp = client.post('/api/shifts', json={
            'am_in': '7.30', 'am_out': '11:30', 'pm_in': '12:30', 'pm_out': '16:30',
        })
        assert resp.status_code == 400
        assert resp.json['reason'] == 'invalid_config'

    def test_overrides(self, client, db_session, supervisor):
        resp = client.post('/api/shifts/overrides', json={
            'supervisor_id': supervisor.id,
            'date': DAY.isoformat(),
            'am': {'start': '09:00', 'end': '12:00'},
        })
        assert resp.status_code == 201

        resp = client.get(f'/api/shifts?supervisor_id={supervisor.id}&date={DAY.isoformat()}')
        assert resp.json['shifts']['sources']['am_in'] == 'override'

        resp = client.delete(f'/api/shifts/overrides?supervisor_id={supervisor.id}&date={DAY.isoformat()}')
        assert resp.json['deleted'] == 1

    def test_overtime_authorization(self, client, db_session, student):
        resp = client.post('/api/shifts/overtime', json={
            'student_id': student.id,
            'date': DAY.isoformat(),
            'start_ms': to_epoch_ms(local(DAY, '18:00')),
            'end_ms': to_epoch_ms(local(DAY, '21:00')),
        })
        assert resp.status_code == 201
        assert resp.json['overtime']['start_ms'] == to_epoch_ms(local(DAY, '18:00'))

        resp = client.get(f'/api/shifts/overtime?student_id={student.id}')
        assert len(resp.json['overtime']) == 1


class TestLedgerAndSystemRoutes:
    def test_rebuild(self, client, db_session, student):
        post_punch(client, student.idnumber, 'in', local(DAY, '08:00'))
        post_punch(client, student.idnumber, 'out', local(DAY, '12:00'))

        resp = client.post('/api/ledger/rebuild', json={'idnumber': student.idnumber})
        assert resp.status_code == 200
        assert resp.json['rebuild']['skipped'] == 1

        resp = client.post('/api/ledger/rebuild', json={'idnumber': student.idnumber, 'all': True})
        assert resp.json['rebuild']['frozen'] == 1

    def test_health(self, client, db_session):
        resp = client.get('/health')
        assert resp.status_code == 200
        assert resp.json['checks']['database']['status'] == 'healthy'
