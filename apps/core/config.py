# core/config.py

"""
Hostel billing profile.

A read-only value built from settings.HOSTEL_PROFILE and passed into the
billing services, so no service keeps its own mutable copy of hostel
configuration.
"""

from dataclasses import dataclass, replace

from django.conf import settings


@dataclass(frozen=True)
class HostelProfile:
    name: str = 'Hostel'
    currency: str = 'NPR'
    minor_units_per_major: int = 100
    invoice_prefix: str = 'BL'
    invoice_due_day: int = 15
    checkout_due_days: int = 0
    prorate_partial_months: bool = True
    balance_tolerance: int = 0

    def __post_init__(self):
        # from_minor_units renders len(str(n)) - 1 decimal places
        if self.minor_units_per_major <= 0 or str(self.minor_units_per_major).rstrip('0') != '1':
            raise ValueError("minor_units_per_major must be a power of ten (1, 10, 100, ...)")
        if not 1 <= self.invoice_due_day <= 28:
            raise ValueError("invoice_due_day must be between 1 and 28")
        if self.balance_tolerance < 0:
            raise ValueError("balance_tolerance cannot be negative")

    @classmethod
    def from_settings(cls):
        """Build the profile from settings.HOSTEL_PROFILE (missing keys use defaults)."""
        values = getattr(settings, 'HOSTEL_PROFILE', None) or {}
        known = {key: value for key, value in values.items() if key in cls.__dataclass_fields__}
        return cls(**known)

    def with_overrides(self, **changes):
        return replace(self, **changes)


def resolve_profile(profile=None):
    """Return the given profile, or the one configured in settings."""
    return profile if profile is not None else HostelProfile.from_settings()
