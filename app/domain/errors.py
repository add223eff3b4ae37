"""
Domain exceptions raised by the service layer.

Each exception carries the HTTP status code the API layer maps it to,
so services stay free of FastAPI imports.
"""


class DomainError(Exception):
    """Base exception for domain layer errors"""
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(DomainError):
    """Raised when a requested record doesn't exist"""
    status_code = 404


class BadRequestError(DomainError):
    """Raised when a request violates a business rule"""
    status_code = 400


class ConflictError(DomainError):
    """Raised when a record already exists or a resource is full"""
    status_code = 409


class UnauthorizedError(DomainError):
    """Raised when credentials or tokens are invalid"""
    status_code = 401


class ForbiddenError(DomainError):
    """Raised when the caller lacks permission for the operation"""
    status_code = 403


class PaymentProviderError(DomainError):
    """Raised when Stripe or PayPal rejects a request"""
    status_code = 400

    def __init__(self, message: str, provider: str, response_body: dict = None):
        self.provider = provider
        self.response_body = response_body
        super().__init__(message)
