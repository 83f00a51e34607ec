"""
Fixed values shared by the matching engine: blood groups, statuses,
clinical intervals and the names of the stored collections.
"""

from datetime import datetime

# ============== BLOOD GROUPS ==============

BLOOD_GROUPS = ['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']

URGENCY_LEVELS = ['low', 'medium', 'high']

# Higher score is more urgent
URGENCY_SCORE = {'high': 3, 'medium': 2, 'low': 1}

# ============== STATUSES ==============

REQUEST_PENDING = 'pending'
REQUEST_MATCHED = 'matched'
REQUEST_COMPLETED = 'completed'
REQUEST_STATUSES = [REQUEST_PENDING, REQUEST_MATCHED, REQUEST_COMPLETED]

MATCH_CONTACTED = 'contacted'
MATCH_DONATED = 'donated'
MATCH_DECLINED = 'declined'
MATCH_STATUSES = [MATCH_CONTACTED, MATCH_DONATED, MATCH_DECLINED]

UNIT_AVAILABLE = 'available'
UNIT_RESERVED = 'reserved'
UNIT_USED = 'used'
UNIT_DISCARDED = 'discarded'
UNIT_STATUSES = [UNIT_AVAILABLE, UNIT_RESERVED, UNIT_USED, UNIT_DISCARDED]

# Derived unit states, computed from timestamps and never stored
UNIT_EXPIRED = 'expired'
UNIT_EXPIRING_SOON = 'expiring_soon'

# ============== CLINICAL INTERVALS ==============

DONATION_COOLDOWN_DAYS = 90
SHELF_LIFE_DAYS = 42
EXPIRING_SOON_DAYS = 7

DONATION_VOLUME_ML = 450
DEFAULT_STORAGE_LOCATION = 'Fridge A / Shelf 1'

# ============== COLLECTIONS ==============

DONORS = 'donors'
REQUESTS = 'requests'
UNITS = 'units'
MATCHES = 'matches'
COLLECTIONS = [DONORS, REQUESTS, UNITS, MATCHES]

# Identity key of the records held in each collection
ID_FIELDS = {
    DONORS: 'donor_id',
    REQUESTS: 'request_id',
    UNITS: 'unit_id',
    MATCHES: 'match_id',
}

DATE_FORMAT = '%Y-%m-%d'


def iso_now(now=None):
    """Timestamp string at seconds precision"""
    return (now or datetime.now()).isoformat(timespec='seconds')


def parse_timestamp(value):
    """
    Parse a stored date or timestamp string into a naive local datetime.
    Accepts date-only values ('2024-01-20') and ISO strings with an
    offset or a trailing 'Z'. Returns None for empty values.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed
