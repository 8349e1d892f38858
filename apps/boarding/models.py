# boarding/models.py

from django.db import models
from django.core.validators import MinValueValidator
from utils.models import BaseModel
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# ROOM MODEL
# =============================================================================

class Room(BaseModel):
    """A hostel room with a fixed number of beds"""

    # -------------------------------------------------------------------------
    # CHOICE FIELDS
    # -------------------------------------------------------------------------

    STATUS_VACANT = 'VACANT'
    STATUS_OCCUPIED = 'OCCUPIED'
    STATUS_MAINTENANCE = 'MAINTENANCE'

    STATUS_CHOICES = [
        (STATUS_VACANT, 'Vacant'),
        (STATUS_OCCUPIED, 'Occupied'),
        (STATUS_MAINTENANCE, 'Under Maintenance'),
    ]

    # -------------------------------------------------------------------------
    # BASIC INFORMATION
    # -------------------------------------------------------------------------

    room_number = models.CharField("Room Number", max_length=20, unique=True, db_index=True)
    floor = models.CharField("Floor", max_length=10, blank=True)

    # -------------------------------------------------------------------------
    # CAPACITY MANAGEMENT
    # -------------------------------------------------------------------------

    capacity = models.PositiveIntegerField(
        "Beds",
        default=1,
        validators=[MinValueValidator(1)]
    )
    occupancy = models.PositiveIntegerField(
        "Current Occupancy",
        default=0,
        validators=[MinValueValidator(0)]
    )

    status = models.CharField(
        "Status",
        max_length=12,
        choices=STATUS_CHOICES,
        default=STATUS_VACANT,
        db_index=True
    )

    class Meta:
        verbose_name = "Room"
        verbose_name_plural = "Rooms"
        ordering = ['room_number']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(occupancy__lte=models.F('capacity')),
                name='room_occupancy_within_capacity',
            ),
        ]

    def __str__(self):
        return f"Room {self.room_number} ({self.occupancy}/{self.capacity})"

    @property
    def available_beds(self):
        return max(self.capacity - self.occupancy, 0)

    @property
    def is_assignable(self):
        """A room takes new students when it is not under maintenance and has a free bed"""
        return self.status != self.STATUS_MAINTENANCE and self.occupancy < self.capacity

    def refresh_status(self):
        """Derive VACANT/OCCUPIED from occupancy; maintenance is left alone."""
        if self.status == self.STATUS_MAINTENANCE:
            return self.status
        self.status = self.STATUS_OCCUPIED if self.occupancy > 0 else self.STATUS_VACANT
        return self.status
