"""Typed errors raised by the game services.

Every error names the entity it is about so transport layers can render an
actionable message without parsing strings.
"""


class GameError(Exception):
    """Base class for all rejected game operations."""
    kind = 'error'
    status_code = 400

    def __init__(self, message, entity=None, entity_id=None):
        self.message = message
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message)

    def to_dict(self):
        return {
            'error': self.message,
            'kind': self.kind,
            'entity': self.entity,
            'entity_id': self.entity_id,
        }


class NotFoundError(GameError):
    """Game, round, topic or item does not exist."""
    kind = 'not_found'
    status_code = 404

    def __init__(self, entity, entity_id):
        super().__init__(f"{entity.capitalize()} {entity_id} not found", entity, entity_id)


class InvalidStateError(GameError):
    """Operation attempted in the wrong lifecycle state."""
    kind = 'invalid_state'
    status_code = 409


class UnauthorizedError(GameError):
    """Actor is not the VIP, creator or player the operation requires."""
    kind = 'unauthorized'
    status_code = 403


class ValidationError(GameError):
    """Malformed input, e.g. a ranking that is not a permutation."""
    kind = 'validation'
    status_code = 400


class ConflictError(GameError):
    """Duplicate submission violating a uniqueness rule."""
    kind = 'conflict'
    status_code = 409
