from datetime import datetime, timedelta

import pytest

from bloodlife.config import TestingConfig
from bloodlife.service import BloodBank
from bloodlife.storage import MemoryStore
from bloodlife.web import create_app

NOW = datetime(2025, 6, 15, 10, 30, 0)


def days_ago(days):
    return (NOW - timedelta(days=days)).strftime('%Y-%m-%d')


def make_donor(**overrides):
    donor = {
        'donor_id': 'DON-X',
        'name': 'Aarav Sharma',
        'phone': '9876543210',
        'blood_group': 'O+',
        'city': 'Mumbai',
        'area': 'Andheri',
        'last_donation': None,
        'is_active': True,
        'created_at': '2025-01-01T09:00:00',
    }
    donor.update(overrides)
    return donor


def make_request(**overrides):
    request_data = {
        'request_id': 'BR-Y',
        'patient_name': 'Rajesh Kumar',
        'hospital': 'Apollo Hospital',
        'blood_group': 'O+',
        'units_needed': 2,
        'city': 'Mumbai',
        'area': 'Bandra',
        'urgency': 'high',
        'contact_phone': '9898989898',
        'status': 'pending',
        'created_at': '2025-06-01T08:00:00',
    }
    request_data.update(overrides)
    return request_data


def make_unit(**overrides):
    unit = {
        'unit_id': 'UNIT-1',
        'unit_code': 'BLD-IND-0001',
        'blood_group': 'O+',
        'donor_id': None,
        'volume_ml': 450,
        'collected_at': (NOW - timedelta(days=2)).isoformat(timespec='seconds'),
        'expires_at': (NOW + timedelta(days=40)).isoformat(timespec='seconds'),
        'storage_location': 'Fridge A / Shelf 1',
        'status': 'available',
        'reserved_for_request_id': None,
        'created_at': (NOW - timedelta(days=2)).isoformat(timespec='seconds'),
    }
    unit.update(overrides)
    return unit


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def bank(store):
    return BloodBank(store, clock=lambda: NOW)


@pytest.fixture
def stocked_bank(store):
    """Bank holding donor X, request Y and one O+ unit"""
    store.save('donors', [make_donor()])
    store.save('requests', [make_request()])
    store.save('units', [make_unit()])
    return BloodBank(store, clock=lambda: NOW)


@pytest.fixture
def app(store):
    app = create_app(TestingConfig, store=store, clock=lambda: NOW)
    return app


@pytest.fixture
def client(app):
    return app.test_client()
