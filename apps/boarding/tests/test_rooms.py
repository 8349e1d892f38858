"""
Tests for room assignment, release and the room endpoints.
"""

import json
from datetime import date

from django.test import TestCase
from django.urls import reverse

from boarding.models import Room
from boarding.services import RoomService, RoomUnavailableError
from boarding.stats import get_room_statistics
from students.models import Student


def make_student(name):
    return Student.objects.create(
        name=name, base_monthly_fee=500000, enrollment_date=date(2024, 1, 1)
    )


class RoomServiceTests(TestCase):
    def setUp(self):
        self.room = Room.objects.create(room_number='101', capacity=2)
        self.asha = make_student('Asha')
        self.bikash = make_student('Bikash')

    def test_assign_and_release(self):
        RoomService.assign_student(self.asha, self.room)
        room = RoomService.assign_student(self.bikash, self.room)
        self.assertEqual(room.occupancy, 2)
        self.assertEqual(room.status, Room.STATUS_OCCUPIED)
        self.assertFalse(room.is_assignable)

        self.asha.refresh_from_db()
        released = RoomService.release_student(self.asha)
        self.assertEqual(released.occupancy, 1)
        self.asha.refresh_from_db()
        self.assertIsNone(self.asha.room)

        self.bikash.refresh_from_db()
        released = RoomService.release_student(self.bikash)
        self.assertEqual(released.status, Room.STATUS_VACANT)

    def test_release_without_room(self):
        self.assertIsNone(RoomService.release_student(self.asha))

    def test_full_room(self):
        single = Room.objects.create(room_number='102', capacity=1)
        RoomService.assign_student(self.asha, single)
        with self.assertRaises(RoomUnavailableError):
            RoomService.assign_student(self.bikash, single)

    def test_room_under_maintenance(self):
        self.room.status = Room.STATUS_MAINTENANCE
        self.room.save()
        with self.assertRaises(RoomUnavailableError):
            RoomService.assign_student(self.asha, self.room)

    def test_student_with_a_room_must_release_first(self):
        other = Room.objects.create(room_number='103', capacity=1)
        RoomService.assign_student(self.asha, self.room)
        with self.assertRaises(RoomUnavailableError):
            RoomService.assign_student(self.asha, other)

    def test_reassigning_same_room_is_a_no_op(self):
        RoomService.assign_student(self.asha, self.room)
        room = RoomService.assign_student(self.asha, self.room)
        self.assertEqual(room.occupancy, 1)

    def test_statistics(self):
        Room.objects.create(room_number='900', capacity=4, status=Room.STATUS_MAINTENANCE)
        RoomService.assign_student(self.asha, self.room)

        stats = get_room_statistics()

        self.assertEqual(stats['total_rooms'], 2)
        self.assertEqual(stats['total_beds'], 6)
        self.assertEqual(stats['occupied_beds'], 1)
        self.assertEqual(stats['available_beds'], 1)
        self.assertEqual(stats['status_counts'][Room.STATUS_MAINTENANCE], 1)
        self.assertEqual(stats['residents_without_room'], 1)


class RoomAPITests(TestCase):
    def post(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type='application/json')

    def test_create_assign_and_list(self):
        response = self.post(reverse('boarding:room_create'), {'room_number': '101', 'capacity': 1})
        self.assertEqual(response.status_code, 201)
        room_id = response.json()['data']['id']

        response = self.post(reverse('boarding:room_create'), {'room_number': '101'})
        self.assertEqual(response.status_code, 400)

        student = make_student('Asha')
        response = self.post(reverse('boarding:room_assign', args=[room_id]), {'student_id': str(student.pk)})
        self.assertEqual(response.json()['data']['occupancy'], 1)

        other = make_student('Bikash')
        response = self.post(reverse('boarding:room_assign', args=[room_id]), {'student_id': str(other.pk)})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error']['code'], 'room_unavailable')

        response = self.client.get(reverse('boarding:room_list'), {'available': 'true'})
        self.assertEqual(response.json()['data']['total_count'], 0)

    def test_capacity_must_be_positive(self):
        response = self.post(reverse('boarding:room_create'), {'room_number': '5', 'capacity': 0})
        self.assertEqual(response.status_code, 400)
