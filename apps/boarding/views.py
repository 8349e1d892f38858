# boarding/views.py

from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST
import logging

from students.models import Student
from utils.utils import api_view, json_success, parse_filters, parse_json_body, require_fields

from .models import Room
from .services import RoomService
from .stats import get_room_statistics

logger = logging.getLogger(__name__)


def serialize_room(room):
    return {
        'id': str(room.id),
        'room_number': room.room_number,
        'floor': room.floor,
        'capacity': room.capacity,
        'occupancy': room.occupancy,
        'available_beds': room.available_beds,
        'status': room.status,
    }


# =============================================================================
# ROOMS
# =============================================================================

@require_GET
@api_view
def room_list(request):
    filters = parse_filters(request, ['status', 'available'])

    rooms = Room.objects.all()
    if filters['status']:
        rooms = rooms.filter(status=filters['status'].upper())
    room_list = [serialize_room(r) for r in rooms]
    if filters['available'] and filters['available'].lower() == 'true':
        room_list = [r for r in room_list if r['available_beds'] > 0 and r['status'] != Room.STATUS_MAINTENANCE]

    return json_success({
        'rooms': room_list,
        'total_count': len(room_list),
        'stats': get_room_statistics(),
    })


@require_POST
@api_view
def room_create(request):
    """Body: {"room_number": "101", "floor": "1", "capacity": 2}"""
    payload = parse_json_body(request)
    require_fields(payload, 'room_number')
    try:
        capacity = int(payload.get('capacity', 1))
    except (TypeError, ValueError):
        raise ValueError("capacity must be an integer")
    if capacity < 1:
        raise ValueError("capacity must be at least 1")
    if Room.objects.filter(room_number=str(payload['room_number'])).exists():
        raise ValueError(f"Room {payload['room_number']} already exists")

    room = Room.objects.create(
        room_number=str(payload['room_number']),
        floor=str(payload.get('floor', '')),
        capacity=capacity,
    )
    logger.info(f"Created room {room.room_number} with {room.capacity} bed(s)")
    return json_success(serialize_room(room), status=201)


@require_POST
@api_view
def room_assign(request, room_id):
    """Body: {"student_id": "..."}"""
    room = get_object_or_404(Room, pk=room_id)
    payload = parse_json_body(request)
    require_fields(payload, 'student_id')
    student = get_object_or_404(Student, pk=payload['student_id'])

    room = RoomService.assign_student(student, room)
    return json_success(serialize_room(room))
