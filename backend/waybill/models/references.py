"""Typed references for the polymorphic transport event trail.

A TransportEvent points at a manifest, a shipment or a trip.  Callers
build one of the frozen dataclasses below instead of passing a loose
(type, id) pair, so an event can't be filed against the wrong entity kind.
"""

import enum
from dataclasses import dataclass
from typing import ClassVar, Union


class ReferenceType(str, enum.Enum):
    MANIFEST = "manifest"
    SHIPMENT = "shipment"
    TRIP = "trip"


@dataclass(frozen=True)
class ManifestRef:
    manifest_id: str
    reference_type: ClassVar[ReferenceType] = ReferenceType.MANIFEST

    @property
    def reference_id(self) -> str:
        return self.manifest_id


@dataclass(frozen=True)
class ShipmentRef:
    shipment_id: str
    reference_type: ClassVar[ReferenceType] = ReferenceType.SHIPMENT

    @property
    def reference_id(self) -> str:
        return self.shipment_id


@dataclass(frozen=True)
class TripRef:
    trip_id: str
    reference_type: ClassVar[ReferenceType] = ReferenceType.TRIP

    @property
    def reference_id(self) -> str:
        return self.trip_id


EventReference = Union[ManifestRef, ShipmentRef, TripRef]

_REF_BUILDERS = {
    ReferenceType.MANIFEST: ManifestRef,
    ReferenceType.SHIPMENT: ShipmentRef,
    ReferenceType.TRIP: TripRef,
}


def make_reference(reference_type: str | ReferenceType, reference_id: str) -> EventReference:
    """Build the typed reference for a raw (type, id) pair from the wire."""
    return _REF_BUILDERS[ReferenceType(reference_type)](reference_id)
