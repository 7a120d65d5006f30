"""Aggregate model imports for Alembic auto-detection."""

# External stores (read-mostly)
from waybill.models.fleet import Carrier, Driver, TransportRoute, Vehicle  # noqa: F401
from waybill.models.shipment import Shipment  # noqa: F401

# Dispatch
from waybill.models.manifest import Manifest, ManifestShipment  # noqa: F401

# Delivery history and audit
from waybill.models.delivery import DeliveryAttempt, ProofOfDelivery  # noqa: F401
from waybill.models.transport_event import TransportEvent  # noqa: F401
