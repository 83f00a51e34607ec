"""
BloodLife - donor, request and inventory matching for a regional blood bank
"""

from .errors import BloodLifeError, NotFoundError, PersistenceError, StateError, ValidationError
from .service import BloodBank
from .storage import JsonFileStore, MemoryStore, seed_demo_data

__version__ = '1.0.0'

__all__ = [
    'BloodBank', 'JsonFileStore', 'MemoryStore', 'seed_demo_data',
    'BloodLifeError', 'NotFoundError', 'PersistenceError', 'StateError', 'ValidationError',
]
