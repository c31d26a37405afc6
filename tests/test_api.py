"""End-to-end checks through the JSON blueprint with the Flask test client."""

import pytest

from carrental.models import Rental, RentalPayment


@pytest.fixture
def booking(seed):
    return {
        'car_id': seed['car_id'],
        'customer_id': seed['customer_id'],
        'branch_id': seed['branch_id'],
        'start_date': '2030-03-01',
        'end_date': '2030-03-03',
        'actor_id': 1,
    }


def _create(client, booking, **extra):
    resp = client.post('/api/rentals', json={**booking, **extra})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_create_rental(client, booking):
    body = _create(client, booking, initial_payment='100', deposit_payment='60',
                   payment_method='cash')

    assert body['status'] == 'pending'
    assert body['rental_number'].startswith('RNT')
    assert body['total_amount'] == '300.00'
    assert body['deposit_amount'] == '60.00'
    assert body['paid_amount'] == '100.00'
    assert body['remaining_amount'] == '200.00'
    assert body['payment_status'] == 'partial'
    assert body['created_by'] == 1


def test_double_booking_is_a_conflict(client, booking):
    _create(client, booking)
    resp = client.post('/api/rentals', json={**booking, 'start_date': '2030-03-02',
                                             'end_date': '2030-03-05'})
    assert resp.status_code == 409
    assert resp.get_json()['error'] == 'unavailable'


def test_validation_errors_name_the_field(client, booking):
    resp = client.post('/api/rentals', json={**booking, 'end_date': 'tomorrow'})
    assert resp.status_code == 422
    body = resp.get_json()
    assert body['error'] == 'validation_failed'
    assert body['field'] == 'end_date'
    assert body['current'] == 'tomorrow'

    resp = client.post('/api/rentals', json={**booking, 'end_date': '2030-02-01'})
    assert resp.status_code == 422
    assert resp.get_json()['error'] == 'invalid_interval'


def test_lifecycle_over_http(client, booking, seed):
    rental_id = _create(client, booking)['id']

    assert client.post(f'/api/rentals/{rental_id}/confirm', json={'actor_id': 2}).status_code == 200
    resp = client.post(f'/api/rentals/{rental_id}/activate',
                       json={'odometer_start': 5000, 'fuel_level_start': 'full'})
    assert resp.get_json()['status'] == 'active'

    resp = client.get(f"/api/cars/{seed['car_id']}/availability",
                      query_string={'start_date': '2030-03-02', 'end_date': '2030-03-04'})
    assert resp.get_json()['available'] is False

    resp = client.post(f'/api/rentals/{rental_id}/extensions', json={'new_end_date': '2030-03-04'})
    assert resp.status_code == 201
    assert resp.get_json()['extension_amount'] == '100.00'

    resp = client.post(f'/api/rentals/{rental_id}/complete',
                       json={'odometer_end': 5400, 'fuel_level_end': 'half', 'actor_id': 2})
    body = resp.get_json()
    assert body['status'] == 'completed'
    assert body['total_amount'] == '400.00'

    resp = client.post(f'/api/rentals/{rental_id}/confirm', json={})
    assert resp.status_code == 409
    assert resp.get_json() == {'error': 'invalid_transition',
                               'message': resp.get_json()['message'],
                               'field': 'status', 'current': 'completed'}


def test_update_rental(client, booking):
    rental_id = _create(client, booking)['id']
    resp = client.patch(f'/api/rentals/{rental_id}', json={'end_date': '2030-03-04', 'notes': 'late flight'})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body['total_amount'] == '400.00'
    assert body['notes'] == 'late flight'


def test_cancel_requires_reason(client, booking):
    rental_id = _create(client, booking)['id']
    resp = client.post(f'/api/rentals/{rental_id}/cancel', json={})
    assert resp.status_code == 422
    assert resp.get_json()['field'] == 'cancellation_reason'

    resp = client.post(f'/api/rentals/{rental_id}/cancel', json={'cancellation_reason': 'duplicate'})
    assert resp.get_json()['status'] == 'cancelled'


def test_payments_endpoints(client, booking):
    rental_id = _create(client, booking)['id']

    resp = client.post(f'/api/rentals/{rental_id}/payments', json={'amount': '300', 'payment_method': 'card'})
    assert resp.status_code == 201
    payment_id = resp.get_json()['id']

    body = client.get(f'/api/rentals/{rental_id}/payments').get_json()
    assert len(body['payments']) == 1
    assert body['balance']['payment_status'] == 'paid'
    assert body['balance']['deposit_outstanding'] == '60.00'

    resp = client.delete(f'/api/payments/{payment_id}')
    assert resp.get_json()['payment_status'] == 'pending'

    resp = client.post(f'/api/rentals/{rental_id}/payments', json={'amount': '-1'})
    assert resp.status_code == 422


def test_extension_check_endpoint(client, booking):
    rental_id = _create(client, booking)['id']
    body = client.get(f'/api/rentals/{rental_id}/extensions/check',
                      query_string={'new_end_date': '2030-03-05'}).get_json()
    assert body['can_extend'] is False
    assert 'pending' in body['reason']


def test_listing_and_detail(client, booking, seed):
    rental = _create(client, booking)
    _create(client, {**booking, 'car_id': seed['spare_id']})

    body = client.get('/api/rentals', query_string={'car_id': seed['car_id']}).get_json()
    assert body['total'] == 1
    assert body['data'][0]['vehicle'] == 'Toyota Corolla 2022 (A12345)'
    assert body['data'][0]['customer_name'] == 'Jane Doe'
    assert body['data'][0]['branch_name'] == 'Main'

    body = client.get('/api/rentals', query_string={'search': 'B678', 'per_page': 1}).get_json()
    assert body['total'] == 1
    assert body['total_pages'] == 1

    detail = client.get(f"/api/rentals/{rental['id']}").get_json()
    assert detail['rental_number'] == rental['rental_number']
    assert detail['payments'] == []

    assert client.get('/api/rentals', query_string={'status': 'lost'}).status_code == 422


def test_missing_records_are_404(client, seed):
    resp = client.get('/api/rentals/999')
    assert resp.status_code == 404
    assert resp.get_json()['error'] == 'not_found'
    assert client.post('/api/rentals/999/confirm', json={}).status_code == 404
    assert client.get('/api/nothing-here').status_code == 404


def test_overdue_and_stats(client, booking):
    rental_id = _create(client, booking)['id']
    client.post(f'/api/rentals/{rental_id}/confirm', json={})
    client.post(f'/api/rentals/{rental_id}/activate', json={'odometer_start': 1, 'fuel_level_start': 'full'})

    overdue = client.get('/api/rentals/overdue', query_string={'today': '2030-03-06'}).get_json()
    assert [r['id'] for r in overdue] == [rental_id]
    assert overdue[0]['days_overdue'] == 3
    assert client.get('/api/rentals/overdue', query_string={'today': '2030-03-03'}).get_json() == []

    stats = client.get('/api/rentals/stats').get_json()
    assert stats['rentals']['total_rentals'] == 1
    assert stats['rentals']['active'] == 1
    assert stats['rentals']['total_revenue'] == '300.00'


def test_calendar_and_active_lists(client, booking, seed):
    first = _create(client, booking)['id']
    second = _create(client, {**booking, 'start_date': '2030-03-10', 'end_date': '2030-03-12'})['id']
    client.post(f'/api/rentals/{second}/cancel', json={'cancellation_reason': 'duplicate'})

    events = client.get('/api/rentals/calendar',
                        query_string={'start': '2030-03-01', 'end': '2030-03-31'}).get_json()
    assert [e['id'] for e in events] == [first]
    assert events[0]['car_info'] == 'Toyota Corolla 2022 (A12345)'

    assert client.get('/api/rentals/active').get_json() == []
    client.post(f'/api/rentals/{first}/confirm', json={})
    assert [r['id'] for r in client.get('/api/rentals/active').get_json()] == [first]

    assert client.get('/api/rentals/calendar', query_string={'start': '2030-03-01'}).status_code == 422


def test_payment_and_extension_stats(client, booking):
    rental_id = _create(client, booking)['id']
    client.post(f'/api/rentals/{rental_id}/payments', json={'amount': '100'})
    client.post(f'/api/rentals/{rental_id}/payments', json={'amount': '60', 'payment_type': 'deposit'})
    client.post(f'/api/rentals/{rental_id}/confirm', json={})
    client.post(f'/api/rentals/{rental_id}/activate', json={'odometer_start': 1, 'fuel_level_start': 'full'})
    extension_id = client.post(f'/api/rentals/{rental_id}/extensions',
                               json={'new_end_date': '2030-03-05'}).get_json()['id']
    client.post(f'/api/extensions/{extension_id}/paid')

    stats = client.get('/api/rentals/stats').get_json()
    assert stats['payments']['total_payments'] == 2
    assert stats['payments']['total_amount'] == '160.00'
    assert stats['payments']['rental_payments'] == '100.00'
    assert stats['payments']['deposit_payments'] == '60.00'
    assert stats['extensions']['total_extensions'] == 1
    assert stats['extensions']['total_days'] == 2
    assert stats['extensions']['paid_amount'] == '200.00'
    assert stats['extensions']['pending_amount'] == '0.00'

    listed = client.get(f'/api/rentals/{rental_id}/extensions').get_json()
    assert [e['payment_status'] for e in listed] == ['paid']


@pytest.mark.parametrize("bad", [{'initial_payment': 'abc'}, {'deposit_payment': '-5'},
                                 {'initial_payment': '100', 'deposit_payment': '0'}])
def test_bad_counter_payment_rejects_the_whole_rental(client, booking, bad):
    resp = client.post('/api/rentals', json={**booking, **bad})
    assert resp.status_code == 422
    assert resp.get_json()['field'] == 'amount'
    assert Rental.query.count() == 0
    assert RentalPayment.query.count() == 0


def test_with_driver_flag_parses_strings(client, booking):
    body = _create(client, booking, with_driver='false')
    assert body['with_driver'] is False
    assert body['total_amount'] == '300.00'

    resp = client.patch(f"/api/rentals/{body['id']}", json={'with_driver': 'yes'})
    assert resp.status_code == 422
    assert resp.get_json()['field'] == 'driver_name'

    resp = client.patch(f"/api/rentals/{body['id']}", json={'with_driver': 'maybe'})
    assert resp.status_code == 422
    assert resp.get_json()['field'] == 'with_driver'

    resp = client.patch(f"/api/rentals/{body['id']}",
                        json={'with_driver': '1', 'driver_name': 'Sam', 'driver_phone': '0500000000'})
    assert resp.get_json()['total_amount'] == '450.00'
