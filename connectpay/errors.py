"""Service-level errors that map to a specific HTTP response.

Services raise these for expected, client-visible outcomes; blueprints
turn them into JSON with the carried status code. Anything else that
escapes a service is a 500.
"""


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class UserNotFound(ServiceError):
    status_code = 404


class AccountNotFound(ServiceError):
    status_code = 404


class SellerNotReady(ServiceError):
    status_code = 409


class PriceIncomplete(ServiceError):
    status_code = 422


class MissingRedirectUrl(ServiceError):
    status_code = 500
