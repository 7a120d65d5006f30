"""Status enumerations and transition rules for manifests and stops.

Manifest lifecycle:  draft → confirmed → in_progress → completed
                     (any non-terminal state → cancelled)

Stop (manifest shipment) lifecycle:
    pending    → in_transit | delivered | failed | skipped
    in_transit → delivered | failed | skipped
    skipped    → in_transit | delivered | failed
    failed     → delivered              (re-attempt within the same run)
    delivered  → (terminal)
"""

import enum

from waybill.middleware.exceptions import InvalidStateError


class ManifestType(str, enum.Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"
    TRANSFER = "transfer"


class ManifestStatus(str, enum.Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class StopStatus(str, enum.Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED = "skipped"


class AttemptStatus(str, enum.Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    PARTIAL = "partial"


class ActorType(str, enum.Enum):
    DRIVER = "driver"
    SYSTEM = "system"
    USER = "user"


TERMINAL_MANIFEST_STATUSES = frozenset({ManifestStatus.COMPLETED, ManifestStatus.CANCELLED})

# Shipment-store statuses a shipment must be in to be put on a manifest
ASSIGNABLE_SHIPMENT_STATUSES = ("pending", "received", "processing")

MANIFEST_TRANSITIONS: dict[ManifestStatus, frozenset[ManifestStatus]] = {
    ManifestStatus.DRAFT: frozenset({ManifestStatus.CONFIRMED, ManifestStatus.CANCELLED}),
    ManifestStatus.CONFIRMED: frozenset({ManifestStatus.IN_PROGRESS, ManifestStatus.CANCELLED}),
    ManifestStatus.IN_PROGRESS: frozenset({ManifestStatus.COMPLETED, ManifestStatus.CANCELLED}),
    ManifestStatus.COMPLETED: frozenset(),
    ManifestStatus.CANCELLED: frozenset(),
}

STOP_TRANSITIONS: dict[StopStatus, frozenset[StopStatus]] = {
    StopStatus.PENDING: frozenset({
        StopStatus.IN_TRANSIT, StopStatus.DELIVERED, StopStatus.FAILED, StopStatus.SKIPPED,
    }),
    StopStatus.IN_TRANSIT: frozenset({StopStatus.DELIVERED, StopStatus.FAILED, StopStatus.SKIPPED}),
    StopStatus.SKIPPED: frozenset({StopStatus.IN_TRANSIT, StopStatus.DELIVERED, StopStatus.FAILED}),
    StopStatus.FAILED: frozenset({StopStatus.DELIVERED}),
    StopStatus.DELIVERED: frozenset(),
}


def is_terminal(status: str | ManifestStatus) -> bool:
    return ManifestStatus(status) in TERMINAL_MANIFEST_STATUSES


def ensure_manifest_transition(
    current: str | ManifestStatus, target: str | ManifestStatus
) -> ManifestStatus:
    """Validate a manifest status change; return the target as an enum."""
    current, target = ManifestStatus(current), ManifestStatus(target)
    if target not in MANIFEST_TRANSITIONS[current]:
        allowed = sorted(s.value for s in MANIFEST_TRANSITIONS[current])
        raise InvalidStateError(
            f"Cannot move manifest from '{current.value}' to '{target.value}'",
            details={"current": current.value, "target": target.value, "allowed": allowed},
        )
    return target


def ensure_stop_transition(
    current: str | StopStatus, target: str | StopStatus
) -> StopStatus:
    """Validate a stop status change; return the target as an enum."""
    current, target = StopStatus(current), StopStatus(target)
    if target not in STOP_TRANSITIONS[current]:
        allowed = sorted(s.value for s in STOP_TRANSITIONS[current])
        raise InvalidStateError(
            f"Cannot move stop from '{current.value}' to '{target.value}'",
            details={"current": current.value, "target": target.value, "allowed": allowed},
        )
    return target
