"""Gateway error taxonomy.

Every error is terminal for the call that raised it. ``StorageFailure`` is the
only kind a caller should treat as possibly transient.
"""


class GatewayError(Exception):
    """Base class; carries the HTTP status and the flat message returned to callers."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class MalformedEnvelope(GatewayError):
    status_code = 400
    default_message = "Missing required fields: api_key, action, table"


class UnknownAction(GatewayError):
    status_code = 400

    def __init__(self, action):
        self.action = action
        super().__init__(
            f'Unknown action "{action}". Use: select, insert, update, delete'
        )


class InvalidPayload(GatewayError):
    status_code = 400
    default_message = "Invalid 'data' payload"


class InvalidKey(GatewayError):
    status_code = 401
    default_message = "Invalid or inactive API key"


class TableNotFound(GatewayError):
    status_code = 404

    def __init__(self, table):
        self.table = table
        super().__init__(f'Table "{table}" not found')


class RowNotFound(GatewayError):
    status_code = 404
    default_message = "Row not found"


class StorageFailure(GatewayError):
    status_code = 500
    default_message = "Storage operation failed"


# Management surface


class NotFound(GatewayError):
    status_code = 404
    default_message = "Not found"


class Conflict(GatewayError):
    status_code = 409
    default_message = "Already exists"
