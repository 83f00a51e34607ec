"""
Record builders for the four collections.

Records are plain dictionaries so they serialize straight to JSON.
Optional fields are always present (None when unset) which keeps a
load/save round trip lossless.
"""

import random
import uuid
from datetime import timedelta

from .constants import (
    BLOOD_GROUPS, URGENCY_LEVELS, REQUEST_PENDING, MATCH_STATUSES,
    UNIT_AVAILABLE, UNIT_STATUSES, SHELF_LIFE_DAYS, DONATION_VOLUME_ML,
    DEFAULT_STORAGE_LOCATION, DATE_FORMAT, iso_now, parse_timestamp,
)
from .errors import ValidationError

# ============== ID HELPERS ==============

def generate_id(prefix='ID'):
    """Generate unique prefixed ID"""
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


def generate_donor_id():
    return generate_id('DON')


def generate_request_id():
    return generate_id('BR')


def generate_unit_id():
    return generate_id('UNIT')


def generate_match_id():
    return generate_id('MT')


UNIT_CODE_PREFIX = 'BLD-IND-'
UNIT_CODE_ATTEMPTS = 50


def generate_unit_code(existing_codes=()):
    """
    Generate a human-readable unit code not present in existing_codes.

    A few random four-digit codes are tried first; once those collide the
    code continues past the highest number already issued.
    """
    taken = set(existing_codes)
    for _ in range(UNIT_CODE_ATTEMPTS):
        code = f"{UNIT_CODE_PREFIX}{random.randint(1000, 9999)}"
        if code not in taken:
            return code
    numbers = [int(c[len(UNIT_CODE_PREFIX):]) for c in taken
               if isinstance(c, str) and c.startswith(UNIT_CODE_PREFIX) and c[len(UNIT_CODE_PREFIX):].isdigit()]
    return f"{UNIT_CODE_PREFIX}{max(numbers, default=999) + 1}"

# ============== VALIDATION ==============

def _require(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def validate_blood_group(blood_group):
    if blood_group not in BLOOD_GROUPS:
        raise ValidationError(f"Invalid blood group: {blood_group!r}")
    return blood_group


def positive_int(value, field):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive integer")
    if number != value and str(number) != str(value).strip():
        raise ValidationError(f"{field} must be a positive integer")
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return number


def parse_bool(value, field):
    """Accept JSON booleans and the strings true/false"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise ValidationError(f"{field} must be true or false")


def _date_or_none(value, field):
    if value in (None, ''):
        return None
    try:
        return parse_timestamp(value).strftime(DATE_FORMAT)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")


def _timestamp(value, field):
    try:
        return iso_now(parse_timestamp(value))
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO date or timestamp")

# ============== RECORD BUILDERS ==============

def new_donor(data, now=None):
    """Build a donor record from caller data"""
    _require(data, 'name', 'phone', 'blood_group', 'city')
    return {
        'donor_id': generate_donor_id(),
        'name': str(data['name']).strip(),
        'phone': str(data['phone']).strip(),
        'blood_group': validate_blood_group(data['blood_group']),
        'city': str(data['city']).strip(),
        'area': str(data.get('area') or '').strip(),
        'last_donation': _date_or_none(data.get('last_donation'), 'last_donation'),
        'is_active': parse_bool(data.get('is_active', True), 'is_active'),
        'created_at': iso_now(now),
    }


def new_request(data, now=None):
    """Build a pending blood request record from caller data"""
    _require(data, 'patient_name', 'blood_group', 'units_needed', 'city', 'contact_phone')
    urgency = data.get('urgency') or 'medium'
    if urgency not in URGENCY_LEVELS:
        raise ValidationError(f"Invalid urgency: {urgency!r}")
    return {
        'request_id': generate_request_id(),
        'patient_name': str(data['patient_name']).strip(),
        'hospital': data.get('hospital') or None,
        'blood_group': validate_blood_group(data['blood_group']),
        'units_needed': positive_int(data['units_needed'], 'units_needed'),
        'city': str(data['city']).strip(),
        'area': str(data.get('area') or '').strip(),
        'urgency': urgency,
        'contact_phone': str(data['contact_phone']).strip(),
        'status': REQUEST_PENDING,
        'created_at': iso_now(now),
    }


def new_unit(data, existing_codes=(), now=None):
    """
    Build an inventory unit record from caller data.

    collected_at defaults to now and expires_at to collected_at plus the
    shelf life; an explicit expires_at overrides the computed one.
    """
    _require(data, 'blood_group')
    if data.get('collected_at'):
        collected_at = _timestamp(data['collected_at'], 'collected_at')
    else:
        collected_at = iso_now(now)
    if data.get('expires_at'):
        expires_at = _timestamp(data['expires_at'], 'expires_at')
    else:
        expires_at = iso_now(parse_timestamp(collected_at) + timedelta(days=SHELF_LIFE_DAYS))
    unit_code = data.get('unit_code')
    if unit_code:
        unit_code = str(unit_code).strip()
        if unit_code in set(existing_codes):
            raise ValidationError(f"Unit code {unit_code} is already in use")
    else:
        unit_code = generate_unit_code(existing_codes)
    status = data.get('status') or UNIT_AVAILABLE
    if status not in UNIT_STATUSES:
        raise ValidationError(f"Invalid unit status: {status!r}")
    return {
        'unit_id': generate_unit_id(),
        'unit_code': unit_code,
        'blood_group': validate_blood_group(data['blood_group']),
        'donor_id': data.get('donor_id') or None,
        'volume_ml': positive_int(data.get('volume_ml', DONATION_VOLUME_ML), 'volume_ml'),
        'collected_at': collected_at,
        'expires_at': expires_at,
        'storage_location': data.get('storage_location') or DEFAULT_STORAGE_LOCATION,
        'status': status,
        'reserved_for_request_id': data.get('reserved_for_request_id') or None,
        'created_at': iso_now(now),
    }


def new_match(request_id, donor_id, status, now=None):
    if status not in MATCH_STATUSES:
        raise ValidationError(f"Invalid match status: {status!r}")
    return {
        'match_id': generate_match_id(),
        'request_id': request_id,
        'donor_id': donor_id,
        'status': status,
        'created_at': iso_now(now),
    }


def validate_partial_update(updates, id_field, allowed_fields):
    """Reject identity changes and unknown fields in a partial update"""
    if not isinstance(updates, dict):
        raise ValidationError('Update must be an object')
    for field in (id_field, 'created_at'):
        if field in updates:
            raise ValidationError(f"{field} cannot be changed")
    unknown = sorted(set(updates) - set(allowed_fields))
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")
    if 'blood_group' in updates:
        validate_blood_group(updates['blood_group'])
    return dict(updates)
