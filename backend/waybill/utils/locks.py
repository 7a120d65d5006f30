"""Field locking — prevent edits to manifest fields once the run is underway.

get_manifest_locks() returns a LockInfo describing which fields are locked
and why, without raising.  The caller (service) decides whether to block
the request based on which fields are being updated.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from waybill.models.status import ManifestStatus, is_terminal


# ── Data structures ────────────────────────────────────────────


@dataclass
class FieldLock:
    """A single locked field with reason and unlock instructions."""
    field: str
    reason: str
    blocker_type: str   # "manifest_status"
    blocker_ref: str    # manifest number, e.g. "MAN-260301-7K2Q"
    unlock_hint: str


@dataclass
class LockInfo:
    """Lock state for an entity.  Empty locked_fields means nothing locked."""
    locked_fields: dict[str, FieldLock] = field(default_factory=dict)

    @property
    def is_locked(self) -> bool:
        return len(self.locked_fields) > 0

    def check_update(self, updating_fields: set[str]) -> FieldLock | None:
        """Return the first FieldLock that conflicts, or None."""
        for f in sorted(updating_fields):
            if f in self.locked_fields:
                return self.locked_fields[f]
        return None

    def locked_field_names(self) -> list[str]:
        return list(self.locked_fields.keys())


def _add_locks(
    info: LockInfo,
    field_names: list[str],
    reason: str,
    blocker_ref: str,
    unlock_hint: str,
) -> None:
    for name in field_names:
        info.locked_fields[name] = FieldLock(
            field=name,
            reason=f"Cannot edit {name}: {reason}",
            blocker_type="manifest_status",
            blocker_ref=blocker_ref,
            unlock_hint=unlock_hint,
        )


# ── Manifest locks (status-based, no DB query needed) ─────────


# Every patchable manifest field except free-text notes
MANIFEST_EDITABLE_FIELDS = [
    "manifest_date", "manifest_type", "carrier_id", "vehicle_id",
    "driver_id", "route_id", "branch_id", "planned_start", "planned_end",
]

# Locked as soon as the driver is on the road
MANIFEST_DISPATCH_FIELDS = [
    "manifest_date", "manifest_type", "carrier_id",
    "vehicle_id", "driver_id", "route_id",
]


def get_manifest_locks(manifest) -> LockInfo:
    """Lock dispatch fields on running manifests and everything on closed ones."""
    info = LockInfo()

    if is_terminal(manifest.status):
        _add_locks(
            info,
            MANIFEST_EDITABLE_FIELDS,
            reason=f"Manifest {manifest.manifest_number} is {manifest.status}",
            blocker_ref=manifest.manifest_number,
            unlock_hint="Duplicate the manifest to plan a new run.",
        )
    elif manifest.status == ManifestStatus.IN_PROGRESS.value:
        _add_locks(
            info,
            MANIFEST_DISPATCH_FIELDS,
            reason=f"Manifest {manifest.manifest_number} is in progress",
            blocker_ref=manifest.manifest_number,
            unlock_hint="Complete or cancel the run first.",
        )
    return info
