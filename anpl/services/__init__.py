from anpl.services.eligibility_service import (
    calculate_age, validate_age_limit, required_gender,
    ensure_documents, validate_participant_for_category,
)
from anpl.services.relation_service import (
    RelationDefinition, RELATIONS, resolve_relation, relation_options,
)
from anpl.services.bundle_service import (
    BundleView, EntryView,
    seed_categories, list_categories,
    create_bundle, get_bundle, load_bundle, delete_bundle,
)
from anpl.services.registration_service import (
    RegistrationSummary, make_registration_number, transition_status,
    create_or_reuse, apply_event_specific_fields,
    create_registration, register_for_event, update_registration_status,
    get_registration, list_registrations, get_participant_registrations,
    is_registration_complete,
)
from anpl.services.event_service import (
    list_events, list_active_events, get_event, toggle_event,
)
from anpl.services.participant_service import search_participants
from anpl.services.gateway import (
    GatewayOrder, GatewayError, SignatureVerificationError, RazorpayGateway,
)
from anpl.services.payment_service import (
    TargetKind, OrderView, PaymentStatusView,
    create_order, verify_payment, check_payment_status, latest_payment,
)
from anpl.services.notification_service import (
    notify_registration_status, notify_bundle_status,
)

__all__ = [
    # eligibility
    "calculate_age", "validate_age_limit", "required_gender",
    "ensure_documents", "validate_participant_for_category",
    # family relations
    "RelationDefinition", "RELATIONS", "resolve_relation", "relation_options",
    # badminton bundles
    "BundleView", "EntryView",
    "seed_categories", "list_categories",
    "create_bundle", "get_bundle", "load_bundle", "delete_bundle",
    # single-entry registrations
    "RegistrationSummary", "make_registration_number", "transition_status",
    "create_or_reuse", "apply_event_specific_fields",
    "create_registration", "register_for_event", "update_registration_status",
    "get_registration", "list_registrations", "get_participant_registrations",
    "is_registration_complete",
    # events
    "list_events", "list_active_events", "get_event", "toggle_event",
    # participant directory
    "search_participants",
    # gateway
    "GatewayOrder", "GatewayError", "SignatureVerificationError", "RazorpayGateway",
    # payments
    "TargetKind", "OrderView", "PaymentStatusView",
    "create_order", "verify_payment", "check_payment_status", "latest_payment",
    # notifications
    "notify_registration_status", "notify_bundle_status",
]
