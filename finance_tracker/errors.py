"""Error taxonomy shared by the services and the JSON error handlers."""


class ApiError(Exception):
    status = 400
    message = 'Something went wrong'

    def __init__(self, message=None, status=None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        if status:
            self.status = status

    def to_dict(self):
        return {'error': self.message}


class Unauthorized(ApiError):
    status = 401
    message = 'Unauthorized'


class ValidationFailed(ApiError):
    status = 400
    message = 'Invalid input'

    def __init__(self, message=None, field=None):
        super().__init__(message)
        self.field = field

    def to_dict(self):
        body = super().to_dict()
        if self.field:
            body['field'] = self.field
        return body


class NotFound(ApiError):
    status = 404
    message = 'Not found'


class Conflict(ApiError):
    status = 400


class ReferentialBlock(ApiError):
    status = 400

    def __init__(self, count):
        super().__init__(
            f'Cannot delete account with {count} transaction(s). '
            'Please reassign or delete transactions first.'
        )
        self.count = count


class EmailDispatchError(ApiError):
    status = 500
    message = 'Failed to send email'
