# utils/models.py

"""
Base model for the hostel system with an audit trail.

Every model records when it was created/updated, who did it and from which
IP address. The user and IP are taken from the thread-local request context
populated by utils.middleware.AuditContextMiddleware.
"""

from django.db import models
from django.utils import timezone
import uuid
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# BASE MODEL
# =============================================================================

class BaseModel(models.Model):
    """
    Abstract base model with audit trail fields.

    Features:
    - UUID primary keys
    - Automatic created/updated timestamps
    - User tracking (who created/updated)
    - IP address tracking (where operations came from)
    - Change reason tracking (why changes were made)
    """

    # Core identification
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Timestamps
    created_at = models.DateTimeField("Created At", db_index=True)
    updated_at = models.DateTimeField("Updated At", db_index=True)

    # User tracking - CharField so no FK to the auth tables is required
    created_by_id = models.CharField(
        "Created By ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of user who created this record"
    )
    updated_by_id = models.CharField(
        "Updated By ID",
        max_length=50,
        null=True,
        blank=True,
        help_text="ID of user who last updated this record"
    )

    # IP tracking
    created_from_ip = models.GenericIPAddressField("Created From IP", null=True, blank=True)
    updated_from_ip = models.GenericIPAddressField("Updated From IP", null=True, blank=True)

    # Change reason tracking
    change_reason = models.CharField(
        "Change Reason",
        max_length=255,
        blank=True,
        null=True,
        help_text="Explanation for why this change was made"
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """
        Override save to:
        1. Set timestamps
        2. Populate audit trail fields from the request context
        """
        from utils.context import get_request_context, get_current_actor_id

        is_new = self._state.adding
        now = timezone.now()

        # =========================================================================
        # STEP 1: TIMESTAMPS
        # =========================================================================
        if is_new:
            if not self.created_at:
                self.created_at = now
            if not self.updated_at:
                self.updated_at = now
        else:
            self.updated_at = now
            update_fields = kwargs.get('update_fields')
            if update_fields is not None:
                kwargs['update_fields'] = set(update_fields) | {'updated_at'}

        # =========================================================================
        # STEP 2: AUDIT FIELDS FROM REQUEST CONTEXT
        # =========================================================================
        context = get_request_context()

        if context:
            actor_id = get_current_actor_id()
            ip_address = context.get('ip_address')

            if is_new:
                if actor_id and not self.created_by_id:
                    self.created_by_id = actor_id
                if ip_address and not self.created_from_ip:
                    self.created_from_ip = ip_address
            elif kwargs.get('update_fields') is not None:
                kwargs['update_fields'] |= {'updated_by_id', 'updated_from_ip'}

            if actor_id:
                self.updated_by_id = actor_id
            if ip_address:
                self.updated_from_ip = ip_address
        elif is_new:
            logger.debug(
                f"No request context available when creating {self.__class__.__name__}. "
                f"Audit fields will not be populated."
            )

        return super().save(*args, **kwargs)

    def set_change_reason(self, reason):
        """Set the reason recorded with the next save."""
        self.change_reason = reason
        return self
