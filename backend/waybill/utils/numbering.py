"""Manifest number generation.

Format:  MAN-{YYMMDD}-{XXXX}

  YYMMDD → manifest creation date (UTC)
  XXXX   → four random uppercase base-36 characters (0-9, A-Z)

Numbers are not checked against existing rows before insert.  The
(tenant_id, manifest_number) unique constraint turns the rare collision
into an IntegrityError, which the API reports as 409 DUPLICATE_RECORD.
"""

import secrets
import string
from datetime import date

from waybill.database import utcnow

MANIFEST_PREFIX = "MAN"
SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
SUFFIX_LENGTH = 4


def _random_suffix(length: int = SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))


def generate_manifest_number(today: date | None = None) -> str:
    """Generate a manifest number, e.g. "MAN-260301-7K2Q"."""
    today = today or utcnow().date()
    return f"{MANIFEST_PREFIX}-{today.strftime('%y%m%d')}-{_random_suffix()}"
