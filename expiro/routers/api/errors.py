"""Translation of service errors into HTTP errors."""

from fastapi import HTTPException, status

from expiro.core.errors import (
    DuplicateProductError,
    ExpiroError,
    ProductValidationError,
    UnauthenticatedError,
    UnavailableError,
)


def to_http_exception(exc: ExpiroError) -> HTTPException:
    """Map a service error to the HTTP error the client should see.

    Args:
        exc (ExpiroError): The service error.

    Returns:
        HTTPException: The matching HTTP error.
    """
    match exc:
        case ProductValidationError():
            return HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"field": exc.field, "message": str(exc)},
            )
        case DuplicateProductError():
            return HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={
                    "message": str(exc),
                    "name": exc.name,
                    "expiry_date": exc.expiry_date.isoformat(),
                },
            )
        case UnauthenticatedError():
            return HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=str(exc),
                headers={"WWW-Authenticate": "Bearer"},
            )
        case UnavailableError():
            return HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=str(exc),
            )
        case _:
            return HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(exc),
            )
