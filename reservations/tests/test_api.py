from datetime import date, timedelta
from decimal import Decimal
import uuid

from rest_framework import status
from rest_framework.test import APITestCase

from reservations.models import Booking, Coupon, Room, RoomType
from reservations.payments import get_gateway

from .utils import make_booking, make_room, make_room_type


class BookingCreationTestCase(APITestCase):
    """Creating bookings through the API"""

    def setUp(self):
        self.room_type = make_room_type("Standard Room", base_price="2000", max_occupancy=2)
        make_room("101", self.room_type)
        make_room("102", self.room_type)
        Coupon.objects.create(code="SAVE10")
        self.check_in = date.today() + timedelta(days=10)
        self.payload = {
            'guest': {
                'full_name': 'Asha Rao',
                'email': 'asha@example.com',
                'phone': '9800000000',
            },
            'room_type_id': self.room_type.id,
            'check_in': self.check_in.isoformat(),
            'check_out': (self.check_in + timedelta(days=3)).isoformat(),
            'adults': 2,
        }

    def test_create_booking_computes_total(self):
        response = self.client.post('/api/bookings/', self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal("7080.00"))
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(response.data['payment_status'], 'pending')
        self.assertEqual(response.data['nights'], 3)
        self.assertEqual(Decimal(response.data['pricing']['taxes']), Decimal("1080.00"))

    def test_add_ons_and_meal_plan(self):
        payload = dict(self.payload, add_ons=['extra_bed', 'airport_transfer'], meal_plan='breakfast')
        response = self.client.post('/api/bookings/', payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        # 6000 room + 1500 bed + 2000 transfer + 1500 breakfast = 11000, plus 18% tax
        self.assertEqual(Decimal(response.data['total_amount']), Decimal("12980.00"))
        booking = Booking.objects.get(pk=response.data['id'])
        self.assertEqual(booking.add_ons, ['extra_bed', 'airport_transfer', 'breakfast'])

    def test_coupon_applied(self):
        response = self.client.post('/api/bookings/', dict(self.payload, coupon_code='save10'), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal("6480.00"))
        self.assertEqual(response.data['coupon_code'], 'SAVE10')

    def test_unknown_coupon_rejected(self):
        response = self.client.post('/api/bookings/', dict(self.payload, coupon_code='FREESTAY'), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('coupon_code', response.data)
        self.assertEqual(Booking.objects.count(), 0)

    def test_check_out_must_follow_check_in(self):
        payload = dict(self.payload, check_out=self.payload['check_in'])
        response = self.client.post('/api/bookings/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_missing_guest_email(self):
        payload = dict(self.payload, guest={'full_name': 'No Email'})
        response = self.client.post('/api/bookings/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('guest', response.data)

    def test_party_too_large(self):
        response = self.client.post('/api/bookings/', dict(self.payload, adults=2, children=1), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_sold_out_room_type(self):
        for i in range(2):
            payload = dict(self.payload, guest={'full_name': f'G{i}', 'email': f'g{i}@example.com'})
            response = self.client.post('/api/bookings/', payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

        response = self.client.post('/api/bookings/', self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('not available', str(response.data))

    def test_client_token_makes_creation_idempotent(self):
        payload = dict(self.payload, client_token=str(uuid.uuid4()))
        first = self.client.post('/api/bookings/', payload, format='json')
        second = self.client.post('/api/bookings/', payload, format='json')

        self.assertEqual(first.data['id'], second.data['id'])
        self.assertEqual(Booking.objects.count(), 1)

    def test_quote_does_not_persist(self):
        payload = {
            'room_type_id': self.room_type.id,
            'check_in': self.payload['check_in'],
            'check_out': self.payload['check_out'],
            'add_ons': ['extra_bed', 'airport_transfer'],
        }
        response = self.client.post('/api/bookings/quote/', payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(Decimal(response.data['extra_services']), Decimal("3500.00"))
        self.assertEqual(Decimal(response.data['total']), Decimal("11210.00"))
        self.assertEqual(Booking.objects.count(), 0)

    def test_bookings_are_not_deleted(self):
        booking = make_booking(self.room_type)
        response = self.client.delete(f'/api/bookings/{booking.id}/')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

    def test_by_email(self):
        make_booking(self.room_type, email='asha@example.com')
        response = self.client.get('/api/bookings/by_email/', {'email': 'asha@example.com'})
        self.assertEqual(len(response.data), 1)

        response = self.client.get('/api/bookings/by_email/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class BookingLifecycleTestCase(APITestCase):
    """Status changes, allocation and upgrades through the API"""

    def setUp(self):
        self.standard = make_room_type("Standard Room", base_price="2000", tier=1)
        self.suite = make_room_type("Suite", RoomType.Category.SUITE, "5000", tier=3, max_occupancy=4)
        self.room = make_room("101", self.standard)
        self.booking = make_booking(self.standard, total_amount=Decimal("7080.00"))

    def url(self, suffix=''):
        return f'/api/bookings/{self.booking.id}/{suffix}'

    def test_confirm_then_cancel(self):
        response = self.client.patch(self.url(), {'status': 'confirmed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['status'], 'confirmed')

        response = self.client.put(self.url(), {'status': 'cancelled', 'version': 1}, format='json')
        self.assertEqual(response.data['status'], 'cancelled')

    def test_invalid_transition_is_a_conflict(self):
        self.client.patch(self.url(), {'status': 'cancelled'}, format='json')
        response = self.client.patch(self.url(), {'status': 'confirmed'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'invalid_transition')
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)

    def test_unknown_status_rejected_at_the_edge(self):
        response = self.client.patch(self.url(), {'status': 'archived'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stale_version_is_a_conflict(self):
        self.client.patch(self.url(), {'status': 'confirmed'}, format='json')
        response = self.client.patch(self.url(), {'status': 'cancelled', 'version': 0}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'concurrent_modification')

    def test_special_requests(self):
        response = self.client.patch(self.url(), {'special_requests': 'High floor'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['special_requests'], 'High floor')

    def test_cancel_allocated_booking_frees_room(self):
        self.client.patch(self.url(), {'status': 'confirmed'}, format='json')
        response = self.client.post(self.url('allocate/'), {'room_id': self.room.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['room']['status'], 'occupied')

        response = self.client.patch(self.url(), {'status': 'cancelled'}, format='json')

        self.room.refresh_from_db()
        self.assertEqual(response.data['status'], 'cancelled')
        self.assertEqual(self.room.status, Room.Status.AVAILABLE)
        self.assertIsNone(self.room.current_booking)

    def test_allocating_pending_booking_is_a_conflict(self):
        response = self.client.post(self.url('allocate/'), {'room_id': self.room.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'booking_not_allocatable')

    def test_compatible_rooms(self):
        make_room("102", self.standard, status=Room.Status.CLEANING)
        make_room("401", self.suite)
        response = self.client.get(self.url('compatible_rooms/'))
        self.assertEqual([room['number'] for room in response.data], ['101'])

    def test_upgrade_options_and_apply(self):
        self.client.patch(self.url(), {'status': 'confirmed'}, format='json')

        response = self.client.get(self.url('upgrades/'))
        self.assertEqual(len(response.data), 1)
        self.assertEqual(Decimal(response.data[0]['upgrade_fee']), Decimal("9000.00"))

        response = self.client.post(self.url('upgrade/'), {'room_type_id': self.suite.id, 'reason': 'VIP'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal("16080.00"))
        self.assertEqual(response.data['room_type']['id'], self.suite.id)

    def test_downgrade_rejected(self):
        response = self.client.post(f'/api/bookings/{make_booking(self.suite).id}/upgrade/',
                                    {'room_type_id': self.standard.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_availability_for_booking(self):
        make_booking(self.standard, status=Booking.Status.CONFIRMED, email='other@example.com')
        make_room("401", self.suite)

        response = self.client.post(self.url('availability/'), {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertFalse(response.data['available'])
        self.assertEqual([rt['name'] for rt in response.data['alternatives']], ['Suite'])

    def test_availability_for_new_stay(self):
        later = self.booking.check_out + timedelta(days=5)
        response = self.client.post('/api/bookings/availability/', {
            'room_type_id': self.standard.id,
            'check_in': later.isoformat(),
            'check_out': (later + timedelta(days=2)).isoformat(),
        }, format='json')

        self.assertTrue(response.data['available'])
        self.assertEqual(response.data['free_rooms'], 1)


class RoomApiTestCase(APITestCase):

    def setUp(self):
        self.standard = make_room_type("Standard Room")
        self.room = make_room("101", self.standard, floor=1, status=Room.Status.CLEANING)
        make_room("201", self.standard, floor=2)

    def test_list_filters(self):
        response = self.client.get('/api/rooms/', {'status': 'cleaning'})
        self.assertEqual([room['number'] for room in response.data], ['101'])

        response = self.client.get('/api/rooms/', {'floor': 2})
        self.assertEqual([room['number'] for room in response.data], ['201'])

    def test_housekeeping_status(self):
        response = self.client.post(f'/api/rooms/{self.room.id}/status/', {'status': 'available'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['status'], 'available')

        response = self.client.post(f'/api/rooms/{self.room.id}/status/', {'status': 'occupied'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_status_not_writable_directly(self):
        response = self.client.patch(f'/api/rooms/{self.room.id}/', {'status': 'occupied'}, format='json')
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.Status.CLEANING)

    def test_room_type_tier_defaults_from_category(self):
        response = self.client.post('/api/room-types/', {
            'name': 'Grand Suite', 'category': 'suite', 'base_price': '5000.00', 'max_occupancy': 4,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['tier'], 4)

    def test_category_change_moves_tier(self):
        room_type = make_room_type("Garden Room", RoomType.Category.DELUXE, "3000")
        self.assertEqual(room_type.tier, 2)

        response = self.client.put(f'/api/room-types/{room_type.id}/', {
            'name': 'Garden Suite', 'category': 'suite', 'base_price': '5500.00', 'max_occupancy': 3,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['tier'], 4)

        response = self.client.patch(f'/api/room-types/{room_type.id}/',
                                     {'category': 'premium', 'tier': 6}, format='json')
        self.assertEqual(response.data['tier'], 6)


class PaymentApiTestCase(APITestCase):

    def setUp(self):
        self.room_type = make_room_type()
        self.booking = make_booking(self.room_type, total_amount=Decimal("7080.00"))

    def test_order_verify_refund(self):
        response = self.client.post('/api/payments/create-order', {'booking_id': self.booking.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        order_id = response.data['order_id']

        signature = get_gateway().sign(order_id, 'pay_abc')
        response = self.client.post('/api/payments/verify', {
            'order_id': order_id, 'payment_id': 'pay_abc', 'signature': signature,
        }, format='json')
        self.assertEqual(response.data['payment_status'], 'paid')
        self.assertEqual(response.data['booking_status'], 'confirmed')

        response = self.client.post('/api/payments/refund',
                                    {'booking_id': self.booking.id, 'amount': '80.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['status'], 'partially_refunded')
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, Booking.PaymentStatus.PARTIALLY_REFUNDED)

    def test_forged_signature(self):
        response = self.client.post('/api/payments/create-order', {'booking_id': self.booking.id}, format='json')
        response = self.client.post('/api/payments/verify', {
            'order_id': response.data['order_id'], 'payment_id': 'pay_abc', 'signature': 'nope',
        }, format='json')

        self.assertEqual(response.data['payment_status'], 'failed')
        self.assertEqual(response.data['booking_status'], 'pending')


class HealthTestCase(APITestCase):

    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.json(), {'status': 'ok'})
