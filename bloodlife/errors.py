"""Exceptions raised by the BloodLife engine"""


class BloodLifeError(Exception):
    """Base class for every error the engine raises"""

    status_code = 500


class NotFoundError(BloodLifeError):
    """An operation referenced an id absent from its collection"""

    status_code = 404

    def __init__(self, collection, entity_id):
        self.collection = collection
        self.entity_id = entity_id
        super().__init__(f'{collection} record not found: {entity_id}')


class PersistenceError(BloodLifeError):
    """The key-value store failed to load or save a collection"""

    status_code = 500


class StateError(BloodLifeError):
    """A unit or match status change outside the allowed edges"""

    status_code = 409


class ValidationError(BloodLifeError, ValueError):
    """Caller supplied malformed data"""

    status_code = 400
