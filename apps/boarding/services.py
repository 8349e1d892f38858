# boarding/services.py

"""
Room assignment services.

Rooms are released only by CheckoutService after ledger settlement has
completed, so a room is never handed out while its previous occupant's
checkout is still settling.
"""

from django.db import transaction
import logging

from boarding.models import Room
from core.exceptions import HostelError

logger = logging.getLogger(__name__)


class RoomUnavailableError(HostelError):
    code = 'room_unavailable'


class RoomService:
    """Assign students to rooms and release them again"""

    @staticmethod
    @transaction.atomic
    def assign_student(student, room):
        """
        Assign student to room.

        Args:
            student: Student instance (ACTIVE, currently without a room)
            room: Room instance

        Returns:
            Room: the locked, updated room

        Raises:
            RoomUnavailableError: If the room is full or under maintenance
        """
        from students.models import Student

        student = Student.objects.select_for_update().get(pk=student.pk)
        room = Room.objects.select_for_update().get(pk=room.pk)

        if student.status != Student.STATUS_ACTIVE:
            raise RoomUnavailableError(
                f"Only ACTIVE students can be assigned a room, current status: {student.status}"
            )
        if student.room_id == room.pk:
            return room
        if student.room_id is not None:
            raise RoomUnavailableError(
                f"{student.name} already occupies another room; release it first"
            )
        if not room.is_assignable:
            raise RoomUnavailableError(
                f"Room {room.room_number} cannot take new students "
                f"(status {room.status}, {room.occupancy}/{room.capacity})"
            )

        room.occupancy += 1
        room.refresh_status()
        room.save(update_fields=['occupancy', 'status'])

        student.room = room
        student.save(update_fields=['room'])

        logger.info(f"Assigned {student.name} to room {room.room_number} ({room.occupancy}/{room.capacity})")
        return room

    @staticmethod
    @transaction.atomic
    def release_student(student):
        """
        Release the student's bed.

        Returns:
            Room or None: the released room, None when the student had no room
        """
        if student.room_id is None:
            return None

        room = Room.objects.select_for_update().get(pk=student.room_id)
        room.occupancy = max(room.occupancy - 1, 0)
        room.refresh_status()
        room.save(update_fields=['occupancy', 'status'])

        student.room = None
        student.save(update_fields=['room'])

        logger.info(f"Released {student.name} from room {room.room_number} ({room.occupancy}/{room.capacity})")
        return room
