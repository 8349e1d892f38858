# boarding/stats.py

from django.db.models import Count, Sum, Q, Value
from django.db.models.functions import Coalesce

# =============================================================================
# ROOM STATISTICS UTILITIES
# =============================================================================

def get_room_statistics():
    """
    Get occupancy statistics for all rooms

    Returns:
        dict: Dictionary containing room statistics including:
            - total_rooms: Count of rooms
            - status_counts: Dictionary with counts for each room status
            - total_beds: Sum of capacities
            - occupied_beds: Sum of occupancy
            - available_beds: Free beds in rooms not under maintenance
            - occupancy_rate: Occupied beds as a percentage of all beds
            - residents_without_room: ACTIVE students with no room
    """
    from .models import Room
    from students.models import Student

    rooms = Room.objects.all()

    totals = rooms.aggregate(
        total_rooms=Count('id'),
        total_beds=Coalesce(Sum('capacity'), Value(0)),
        occupied_beds=Coalesce(Sum('occupancy'), Value(0)),
    )

    status_counts = {}
    for status_code, status_name in Room.STATUS_CHOICES:
        status_counts[status_code] = rooms.filter(status=status_code).count()

    open_rooms = rooms.exclude(status=Room.STATUS_MAINTENANCE).aggregate(
        capacity=Coalesce(Sum('capacity'), Value(0)),
        occupancy=Coalesce(Sum('occupancy'), Value(0)),
    )
    available_beds = open_rooms['capacity'] - open_rooms['occupancy']

    total_beds = totals['total_beds']
    occupancy_rate = (totals['occupied_beds'] / total_beds * 100) if total_beds > 0 else 0

    residents_without_room = Student.objects.filter(
        Q(status=Student.STATUS_ACTIVE) & Q(room__isnull=True)
    ).count()

    return {
        'total_rooms': totals['total_rooms'],
        'status_counts': status_counts,
        'total_beds': total_beds,
        'occupied_beds': totals['occupied_beds'],
        'available_beds': available_beds,
        'occupancy_rate': round(occupancy_rate, 1),
        'residents_without_room': residents_without_room,
    }
