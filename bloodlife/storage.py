"""
Key-value persistence for the four collections.

A store keeps whole collections keyed by name:
- load(name) returns the stored list (empty list when nothing stored)
- save(name, records) replaces the whole list

JsonFileStore writes one JSON file per collection in a data directory.
MemoryStore keeps the same contract in a dict.
"""

import copy
import json
import logging
import os
import tempfile
from datetime import datetime, timedelta

from .constants import (
    COLLECTIONS, DONORS, REQUESTS, UNITS, MATCHES, SHELF_LIFE_DAYS, DATE_FORMAT, iso_now,
)
from .errors import PersistenceError

logger = logging.getLogger(__name__)


def _check_collection(name):
    if name not in COLLECTIONS:
        raise PersistenceError(f"Unknown collection: {name!r}")


class MemoryStore:
    """In-process store, deep-copies records on the way in and out"""

    def __init__(self, initial=None):
        self._data = {}
        for name, records in (initial or {}).items():
            self.save(name, records)

    def load(self, name):
        _check_collection(name)
        return copy.deepcopy(self._data.get(name, []))

    def save(self, name, records):
        _check_collection(name)
        try:
            # Same serializability guarantee as the file store
            payload = json.dumps(list(records))
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot serialize {name}: {e}") from e
        self._data[name] = json.loads(payload)
        return True


class JsonFileStore:
    """Store backed by <data_dir>/<collection>.json files"""

    def __init__(self, data_dir):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)

    def path_for(self, name):
        return os.path.join(self.data_dir, f'{name}.json')

    def load(self, name):
        """Load a collection from its JSON file"""
        _check_collection(name)
        file_path = self.path_for(name)
        if not os.path.exists(file_path):
            return []
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Error loading %s: %s", file_path, e)
            raise PersistenceError(f"Cannot load {name}: {e}") from e
        if data is None:
            return []
        if not isinstance(data, list):
            raise PersistenceError(f"{file_path} does not hold a list of records")
        return data

    def save(self, name, records):
        """Save a collection to its JSON file"""
        _check_collection(name)
        file_path = self.path_for(name)
        try:
            payload = json.dumps(list(records), ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            logger.error("Error serializing %s: %s", name, e)
            raise PersistenceError(f"Cannot serialize {name}: {e}") from e
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f'.{name}-', suffix='.tmp')
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(payload)
            os.replace(tmp_path, file_path)
        except OSError as e:
            logger.error("Error saving %s: %s", file_path, e)
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise PersistenceError(f"Cannot save {name}: {e}") from e
        return True

# ============== SAMPLE DATA ==============

def _sample_donors(now):
    created = iso_now(now)
    return [
        {'donor_id': 'DON-A1B2C3D4', 'name': 'Aarav Sharma', 'phone': '9876543210', 'blood_group': 'O+',
         'city': 'Mumbai', 'area': 'Andheri', 'last_donation': '2023-11-15', 'is_active': True, 'created_at': created},
        {'donor_id': 'DON-E5F6G7H8', 'name': 'Priya Patel', 'phone': '8877665544', 'blood_group': 'A-',
         'city': 'Ahmedabad', 'area': 'Satellite', 'last_donation': '2024-01-20', 'is_active': True, 'created_at': created},
        {'donor_id': 'DON-I9J0K1L2', 'name': 'Vikram Singh', 'phone': '7766554433', 'blood_group': 'B+',
         'city': 'Delhi', 'area': 'Rohini', 'last_donation': '2023-12-05', 'is_active': True, 'created_at': created},
        {'donor_id': 'DON-M3N4O5P6', 'name': 'Ananya Iyer', 'phone': '9988776655', 'blood_group': 'AB+',
         'city': 'Chennai', 'area': 'Adyar', 'last_donation': None, 'is_active': True, 'created_at': created},
        {'donor_id': 'DON-Q7R8S9T0', 'name': 'Rahul Deshmukh', 'phone': '9123456789', 'blood_group': 'O-',
         'city': 'Pune', 'area': 'Kothrud', 'last_donation': '2023-08-10', 'is_active': True, 'created_at': created},
    ]


def _sample_requests(now):
    created = iso_now(now)
    return [
        {'request_id': 'BR-B5C6D7E8', 'patient_name': 'Rajesh Kumar', 'hospital': 'Apollo Hospital',
         'blood_group': 'O+', 'units_needed': 2, 'city': 'Mumbai', 'area': 'Bandra', 'urgency': 'high',
         'contact_phone': '9898989898', 'status': 'pending', 'created_at': created},
        {'request_id': 'BR-F9G0H1I2', 'patient_name': 'Sita Devi', 'hospital': 'AIIMS',
         'blood_group': 'O-', 'units_needed': 1, 'city': 'Delhi', 'area': 'Saket', 'urgency': 'medium',
         'contact_phone': '8787878787', 'status': 'pending', 'created_at': created},
    ]


def _sample_units(now):
    def unit(unit_id, code, blood_group, volume, expires_in_days, location):
        return {
            'unit_id': unit_id,
            'unit_code': code,
            'blood_group': blood_group,
            'donor_id': None,
            'volume_ml': volume,
            'collected_at': iso_now(now + timedelta(days=expires_in_days - SHELF_LIFE_DAYS)),
            'expires_at': iso_now(now + timedelta(days=expires_in_days)),
            'storage_location': location,
            'status': 'available',
            'reserved_for_request_id': None,
            'created_at': iso_now(now),
        }

    return [
        unit('UNIT-00000101', 'BLD-IND-0001', 'O+', 450, SHELF_LIFE_DAYS, 'Fridge A / Shelf 1'),
        unit('UNIT-00000102', 'BLD-IND-0002', 'O+', 450, SHELF_LIFE_DAYS, 'Fridge A / Shelf 1'),
        # expiring within 5 days
        unit('UNIT-00000103', 'BLD-IND-0003', 'A-', 350, 5, 'Fridge B / Shelf 2'),
        # already expired
        unit('UNIT-00000104', 'BLD-IND-0004', 'B+', 450, -2, 'Fridge C / Shelf 1'),
    ]


def seed_demo_data(store, now=None, reset=False):
    """
    Fill empty collections with demonstration records.
    Returns the names of the collections that were seeded.
    """
    now = now or datetime.now()
    samples = {
        DONORS: _sample_donors,
        REQUESTS: _sample_requests,
        UNITS: _sample_units,
    }
    seeded = []
    for name, build in samples.items():
        if reset or not store.load(name):
            store.save(name, build(now))
            seeded.append(name)
    if reset:
        store.save(MATCHES, [])
    if seeded:
        logger.info("Sample data initialized for %s (%s)", ', '.join(seeded), now.strftime(DATE_FORMAT))
    return seeded
