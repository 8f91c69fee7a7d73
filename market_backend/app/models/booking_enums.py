"""
Lock, booking, queue and payment enumerations.
"""

import enum


class LockStatus(str, enum.Enum):
    """Lock status enumeration."""
    AVAILABLE = "available"  # Free for anyone to book
    BOOKED = "booked"  # Claimed by a booking awaiting payment or verification
    RESERVED = "reserved"  # Held for the next queued user until reservation_expires_at
    RENTED = "rented"  # Payment approved, booking active
    MAINTENANCE = "maintenance"  # Taken out of service by an administrator


class RentalType(str, enum.Enum):
    """Rental term enumeration."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BookingStatus(str, enum.Enum):
    """Booking status enumeration."""
    PENDING_PAYMENT = "pending_payment"  # Created, waiting for a payment slip
    PENDING_VERIFICATION = "pending_verification"  # Slip uploaded, waiting for staff
    ACTIVE = "active"  # Payment approved
    EXPIRED = "expired"  # Rental period is over
    CANCELLED = "cancelled"  # Cancelled by user or payment deadline


# Statuses that hold a lock for their date range
BLOCKING_BOOKING_STATUSES = (
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.PENDING_VERIFICATION,
    BookingStatus.ACTIVE,
)


class PaymentStatus(str, enum.Enum):
    """Payment slip verification status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
