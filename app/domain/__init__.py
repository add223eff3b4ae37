"""
Domain layer - exceptions shared by services and the API layer.

No dependencies on infrastructure or frameworks.
"""
from app.domain.errors import (
    DomainError,
    NotFoundError,
    BadRequestError,
    ConflictError,
    UnauthorizedError,
    ForbiddenError,
    PaymentProviderError,
)

__all__ = [
    "DomainError",
    "NotFoundError",
    "BadRequestError",
    "ConflictError",
    "UnauthorizedError",
    "ForbiddenError",
    "PaymentProviderError",
]
