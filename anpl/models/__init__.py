from anpl.models.base import (
    Base,
    engine,
    AsyncSessionFactory,
    session_scope,
    defer_until_commit,
    drop_deferred,
    run_deferred,
)
from anpl.models.models import (
    Participant,
    Event,
    Category,
    Bundle,
    Entry,
    Registration,
    Payment,
    Gender,
    EventType,
    CategoryType,
    RegistrationStatus,
    PaymentStatus,
)

__all__ = [
    "Base",
    "engine",
    "AsyncSessionFactory",
    "session_scope",
    "defer_until_commit",
    "drop_deferred",
    "run_deferred",
    "Participant",
    "Event",
    "Category",
    "Bundle",
    "Entry",
    "Registration",
    "Payment",
    "Gender",
    "EventType",
    "CategoryType",
    "RegistrationStatus",
    "PaymentStatus",
]
