"""
BloodBank: the caller-facing operations of the engine.

Every mutating operation reads the whole collection(s) it needs from the
store, computes the new collection(s) in memory and writes them back.
"""

import logging
from datetime import datetime, timedelta

from . import dashboard, eligibility, inventory
from .constants import (
    DONORS, REQUESTS, UNITS, MATCHES, COLLECTIONS, ID_FIELDS, URGENCY_LEVELS,
    REQUEST_STATUSES, UNIT_RESERVED, UNIT_AVAILABLE, UNIT_USED, UNIT_DISCARDED,
    SHELF_LIFE_DAYS, DATE_FORMAT, iso_now, parse_timestamp,
)
from .errors import NotFoundError, PersistenceError, StateError, ValidationError
from .matching import apply_match_status
from .records import (
    new_donor, new_request, new_unit, parse_bool, positive_int, validate_partial_update,
)
from .storage import seed_demo_data

logger = logging.getLogger(__name__)

DONOR_FIELDS = ['name', 'phone', 'blood_group', 'city', 'area', 'last_donation', 'is_active']
REQUEST_FIELDS = [
    'patient_name', 'hospital', 'blood_group', 'units_needed', 'city', 'area',
    'urgency', 'contact_phone', 'status',
]
UNIT_FIELDS = [
    'unit_code', 'blood_group', 'donor_id', 'volume_ml', 'collected_at', 'expires_at',
    'storage_location', 'status', 'reserved_for_request_id',
]

# Order in which a cascade is written; matches go last so a failed
# earlier save never leaves the new match status recorded
CASCADE_SAVE_ORDER = [DONORS, UNITS, REQUESTS, MATCHES]


class BloodBank:
    """Engine operations bound to one key-value store"""

    def __init__(self, store, strict_references=False, seed_on_first_run=False, clock=None):
        self.store = store
        self.strict_references = strict_references
        self.seed_on_first_run = seed_on_first_run
        self.clock = clock or datetime.now
        self._seeded = False

    def now(self):
        return self.clock()

    # ============== STORE ACCESS ==============

    def _ensure_seeded(self):
        if self.seed_on_first_run and not self._seeded:
            seed_demo_data(self.store, now=self.now())
        self._seeded = True

    def _load(self, name):
        self._ensure_seeded()
        return self.store.load(name)

    def _save(self, name, records):
        try:
            ok = self.store.save(name, records)
        except PersistenceError:
            logger.exception("Saving %s failed", name)
            raise
        if ok is False:
            logger.error("Saving %s failed", name)
            raise PersistenceError(f"Store refused to save {name}")

    def load_state(self):
        return {name: self._load(name) for name in COLLECTIONS}

    def _get(self, name, entity_id):
        id_field = ID_FIELDS[name]
        for record in self._load(name):
            if record.get(id_field) == entity_id:
                return record
        raise NotFoundError(name, entity_id)

    def _update(self, name, entity_id, apply):
        """Replace one record in its collection with apply(record)"""
        id_field = ID_FIELDS[name]
        records = self._load(name)
        for index, record in enumerate(records):
            if record.get(id_field) == entity_id:
                updated = apply(dict(record))
                records[index] = updated
                self._save(name, records)
                return updated
        raise NotFoundError(name, entity_id)

    # ============== DONORS ==============

    def register_donor(self, data):
        donor = new_donor(data, now=self.now())
        donors = self._load(DONORS)
        self._save(DONORS, [donor] + donors)
        logger.info("New donor registered: %s (%s, %s)", donor['donor_id'], donor['blood_group'], donor['city'])
        return donor

    def update_donor(self, donor_id, updates):
        updates = validate_partial_update(updates, 'donor_id', DONOR_FIELDS)
        if 'last_donation' in updates:
            value = updates['last_donation']
            try:
                updates['last_donation'] = parse_timestamp(value).strftime(DATE_FORMAT) if value else None
            except (TypeError, ValueError):
                raise ValidationError('last_donation must be a date (YYYY-MM-DD)')
        if 'is_active' in updates:
            updates['is_active'] = parse_bool(updates['is_active'], 'is_active')

        def apply(donor):
            donor.update(updates)
            return donor

        self._update(DONORS, donor_id, apply)
        logger.info("Donor %s updated: %s", donor_id, ', '.join(sorted(updates)))

    def get_donor(self, donor_id):
        return self._get(DONORS, donor_id)

    def list_donors(self, search=None, blood_group=None):
        return dashboard.filter_donors(self._load(DONORS), search=search, blood_group=blood_group)

    # ============== REQUESTS ==============

    def post_request(self, data):
        request_data = new_request(data, now=self.now())
        requests = self._load(REQUESTS)
        self._save(REQUESTS, [request_data] + requests)
        logger.info("New blood request: %s (%s x%s, %s, urgency=%s)", request_data['request_id'],
                    request_data['blood_group'], request_data['units_needed'],
                    request_data['city'], request_data['urgency'])
        return request_data

    def update_request(self, request_id, updates):
        updates = validate_partial_update(updates, 'request_id', REQUEST_FIELDS)
        if 'urgency' in updates and updates['urgency'] not in URGENCY_LEVELS:
            raise ValidationError(f"Invalid urgency: {updates['urgency']!r}")
        if 'units_needed' in updates:
            updates['units_needed'] = positive_int(updates['units_needed'], 'units_needed')
        if 'status' in updates and updates['status'] not in REQUEST_STATUSES:
            raise ValidationError(f"Invalid request status: {updates['status']!r}")

        def apply(request_data):
            if 'status' in updates:
                current = REQUEST_STATUSES.index(request_data['status'])
                if REQUEST_STATUSES.index(updates['status']) < current:
                    raise StateError(f"Request {request_id} cannot move from "
                                     f"{request_data['status']} back to {updates['status']}")
            request_data.update(updates)
            return request_data

        self._update(REQUESTS, request_id, apply)
        logger.info("Request %s updated: %s", request_id, ', '.join(sorted(updates)))

    def get_request(self, request_id):
        return self._get(REQUESTS, request_id)

    def list_requests(self, search=None):
        return dashboard.active_requests(self._load(REQUESTS), search=search)

    # ============== MATCHING ==============

    def find_candidates(self, request_id):
        """Compatible donors, available stock and units reserved for this request"""
        request_data = self.get_request(request_id)
        donors = self._load(DONORS)
        units = self._load(UNITS)
        eligible_donors, eligible_units = eligibility.find_candidates(request_data, donors, units, self.now())
        return {
            'donors': eligible_donors,
            'units': eligible_units,
            'reserved_units': eligibility.reserved_units_for(request_data, units),
        }

    def record_match(self, request_id, donor_id, status):
        """
        Record a donor's interaction with a request and apply the cascade.

        Changed collections are written in CASCADE_SAVE_ORDER. A
        PersistenceError stops the sequence before the match is saved;
        collections written before the failure stay written.
        """
        if self.strict_references:
            self.get_request(request_id)
            self.get_donor(donor_id)
        state = self.load_state()
        outcome = apply_match_status(state, request_id, donor_id, status, now=self.now())
        if not outcome.cascaded:
            logger.info("Match %s already %s; nothing to do", outcome.match['match_id'], status)
            return outcome.match

        for name in CASCADE_SAVE_ORDER:
            if outcome.state[name] is not state[name]:
                self._save(name, outcome.state[name])

        logger.info("Match %s: request %s / donor %s -> %s", outcome.match['match_id'],
                    request_id, donor_id, status)
        if outcome.new_unit:
            logger.info("Unit %s added to inventory from donor %s (%s)", outcome.new_unit['unit_code'],
                        donor_id, outcome.new_unit['blood_group'])
        return outcome.match

    def list_matches(self, request_id=None):
        matches = self._load(MATCHES)
        if request_id:
            matches = [m for m in matches if m.get('request_id') == request_id]
        return matches

    # ============== INVENTORY ==============

    def add_inventory_unit(self, data):
        units = self._load(UNITS)
        unit = new_unit(data, existing_codes=[u.get('unit_code') for u in units], now=self.now())
        if unit['status'] == UNIT_RESERVED and not unit['reserved_for_request_id']:
            raise ValidationError('A reserved unit needs reserved_for_request_id')
        self._save(UNITS, [unit] + units)
        logger.info("Unit %s logged (%s, %s mL, expires %s)", unit['unit_code'], unit['blood_group'],
                    unit['volume_ml'], unit['expires_at'])
        return unit

    def update_inventory_unit(self, unit_id, updates):
        """
        Apply a partial update to one unit.
        A status change goes through the lifecycle edges; changing
        collected_at without expires_at recomputes the expiry.
        """
        updates = validate_partial_update(updates, 'unit_id', UNIT_FIELDS)
        now = self.now()
        fields = dict(updates)
        for field in ('collected_at', 'expires_at'):
            if field in fields and fields[field] in (None, ''):
                raise ValidationError(f"{field} cannot be empty")
        try:
            if 'collected_at' in fields:
                collected = parse_timestamp(fields['collected_at'])
                fields['collected_at'] = iso_now(collected)
                if 'expires_at' not in fields:
                    fields['expires_at'] = iso_now(collected + timedelta(days=SHELF_LIFE_DAYS))
            if 'expires_at' in fields:
                fields['expires_at'] = iso_now(parse_timestamp(fields['expires_at']))
        except (TypeError, ValueError):
            raise ValidationError('collected_at and expires_at must be ISO dates or timestamps')
        if 'volume_ml' in fields:
            fields['volume_ml'] = positive_int(fields['volume_ml'], 'volume_ml')
        if 'unit_code' in fields:
            fields['unit_code'] = str(fields['unit_code'] or '').strip()
            if not fields['unit_code']:
                raise ValidationError('unit_code cannot be empty')
            taken = {u.get('unit_code') for u in self._load(UNITS) if u.get('unit_id') != unit_id}
            if fields['unit_code'] in taken:
                raise ValidationError(f"Unit code {fields['unit_code']} is already in use")
        new_status = fields.pop('status', None)
        has_reservation = 'reserved_for_request_id' in fields
        reserved_for = fields.pop('reserved_for_request_id', None)

        def apply(unit):
            status = new_status or unit.get('status')
            request_id = reserved_for if has_reservation else unit.get('reserved_for_request_id')
            unit.update(fields)

            if status != unit.get('status'):
                unit = inventory.transition_unit(unit, status, request_id=request_id, now=now)
            elif request_id != unit.get('reserved_for_request_id'):
                raise StateError('reserved_for_request_id changes only with a reserve or release')
            return unit

        updated = self._update(UNITS, unit_id, apply)
        logger.info("Unit %s updated: %s (status %s)", updated['unit_code'], ', '.join(sorted(updates)),
                    updated['status'])

    def get_unit(self, unit_id):
        return self._get(UNITS, unit_id)

    def list_units(self, blood_group=None, status=None, search=None):
        return inventory.filter_units(self._load(UNITS), blood_group=blood_group, status=status, search=search)

    def reserve_unit(self, unit_id, request_id):
        self.get_request(request_id)
        self.update_inventory_unit(unit_id, {'status': UNIT_RESERVED, 'reserved_for_request_id': request_id})

    def release_unit(self, unit_id):
        self.update_inventory_unit(unit_id, {'status': UNIT_AVAILABLE})

    def mark_unit_used(self, unit_id):
        self.update_inventory_unit(unit_id, {'status': UNIT_USED})

    def discard_unit(self, unit_id):
        self.update_inventory_unit(unit_id, {'status': UNIT_DISCARDED})

    def discard_expired_units(self):
        """Discard every available unit whose expiry has passed"""
        units = self._load(UNITS)
        expired = {u['unit_id'] for u in inventory.expired_units_to_discard(units, self.now())}
        if not expired:
            return []
        updated = [inventory.discard_unit(u) if u['unit_id'] in expired else u for u in units]
        self._save(UNITS, updated)
        codes = [u['unit_code'] for u in units if u['unit_id'] in expired]
        logger.warning("Discarded %d expired unit(s): %s", len(codes), ', '.join(codes))
        return codes

    # ============== DASHBOARD ==============

    def dashboard(self):
        return dashboard.get_statistics(self.load_state(), self.now())
