"""Permission strings understood by the dispatch service.

Permission naming: `<resource>.<action>`
  Resources: manifest, delivery, import
  Actions:   read, write

The identity service embeds the effective permission list in the JWT.
`*` grants everything; `<resource>.*` grants every action on a resource.
"""

from __future__ import annotations

ALL_PERMISSIONS: set[str] = {
    "manifest.read",      # list / view manifests, events, lookups
    "manifest.write",     # create / edit / assign / change status
    "delivery.write",     # record stop progress and delivery outcomes
    "import.write",       # bulk CSV import
}

# Default sets used by tooling that mints tokens (tests, CLI)
DISPATCHER_PERMISSIONS: list[str] = ["manifest.*", "delivery.*", "import.*"]
DRIVER_PERMISSIONS: list[str] = ["manifest.read", "delivery.write"]


def has_permission(granted: list[str], required: str) -> bool:
    """Return True when `granted` covers `required`, honouring wildcards."""
    if "*" in granted or required in granted:
        return True
    resource = required.split(".", 1)[0]
    return f"{resource}.*" in granted
