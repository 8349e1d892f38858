# students/models.py

"""
Student (resident) model.

Fees are stored in integer minor units (paisa). Status follows the checkout
state machine ACTIVE -> SETTLING -> CHECKED_OUT; a failed settlement moves
SETTLING back to ACTIVE.
"""

from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone
import logging

from utils.models import BaseModel

logger = logging.getLogger(__name__)


class Student(BaseModel):
    """Hostel resident with a monthly fee configuration"""

    STATUS_ACTIVE = 'ACTIVE'
    STATUS_SETTLING = 'SETTLING'
    STATUS_CHECKED_OUT = 'CHECKED_OUT'

    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_SETTLING, 'Settling'),
        (STATUS_CHECKED_OUT, 'Checked Out'),
    ]

    # -------------------------------------------------------------------------
    # IDENTITY & CONTACT
    # -------------------------------------------------------------------------

    name = models.CharField("Full Name", max_length=150)
    phone = models.CharField("Phone", max_length=30, blank=True)
    email = models.EmailField("Email", blank=True)

    # -------------------------------------------------------------------------
    # ROOM
    # -------------------------------------------------------------------------

    room = models.ForeignKey(
        'boarding.Room',
        verbose_name="Room",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='residents'
    )

    # -------------------------------------------------------------------------
    # MONTHLY FEES (minor units)
    # -------------------------------------------------------------------------

    base_monthly_fee = models.BigIntegerField(
        "Base Monthly Fee",
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Room rent per month, in minor units"
    )
    laundry_fee = models.BigIntegerField(
        "Laundry Fee",
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Monthly laundry charge, in minor units"
    )
    food_fee = models.BigIntegerField(
        "Food Fee",
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Monthly food charge, in minor units"
    )

    # -------------------------------------------------------------------------
    # STATUS & DATES
    # -------------------------------------------------------------------------

    status = models.CharField(
        "Status",
        max_length=12,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        db_index=True
    )
    enrollment_date = models.DateField("Enrollment Date", default=timezone.localdate)
    checkout_date = models.DateField("Checkout Date", null=True, blank=True)
    checkout_reason = models.CharField("Checkout Reason", max_length=255, blank=True)

    class Meta:
        verbose_name = "Student"
        verbose_name_plural = "Students"
        ordering = ['name']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(base_monthly_fee__gte=0, laundry_fee__gte=0, food_fee__gte=0),
                name='student_fees_not_negative',
            ),
        ]

    def __str__(self):
        return self.name

    @property
    def monthly_fee(self):
        """Full monthly charge: rent + laundry + food"""
        return self.base_monthly_fee + self.laundry_fee + self.food_fee

    @property
    def is_active(self):
        return self.status == self.STATUS_ACTIVE
