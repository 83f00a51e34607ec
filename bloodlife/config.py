"""
Application configuration, read from environment variables.

Loaded into Flask with app.config.from_object().
"""

import os

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'bloodlife-dev-secret-key')
    DATA_DIR = os.environ.get('BLOODLIFE_DATA_DIR', os.path.join(BASE_DIR, 'data'))
    SEED_ON_FIRST_RUN = _env_flag('BLOODLIFE_SEED', True)
    # Reject record_match calls naming unknown donors or requests
    STRICT_REFERENCES = _env_flag('BLOODLIFE_STRICT', False)
    LOG_LEVEL = os.environ.get('BLOODLIFE_LOG_LEVEL', 'INFO').upper()
    TESTING = False
    # 'json' for JsonFileStore under DATA_DIR, 'memory' for MemoryStore
    STORE_BACKEND = os.environ.get('BLOODLIFE_STORE', 'json')


class TestingConfig(Config):
    TESTING = True
    SEED_ON_FIRST_RUN = False
    STORE_BACKEND = 'memory'
