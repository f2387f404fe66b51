"""Map domain and storage failures to HTTP errors"""

import logging

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError

from performup_ledger.domain import exceptions as exc

STATUS_BY_ERROR = {
    exc.NotFoundError: 404,
    exc.PaymentStateError: 409,
    exc.ScheduleCancelledError: 409,
    exc.PlanAlreadyExistsError: 409,
    exc.ImmutableTransactionError: 409,
    exc.OperationAbortedError: 503,
}


def status_for(error: exc.DomainException) -> int:
    for error_type, status_code in STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            return status_code
    return 422


def domain_http_error(error: exc.DomainException, request_id: str) -> HTTPException:
    status_code = status_for(error)
    log = logging.error if status_code >= 500 else logging.warning
    log(f"{error.code}: {error.message}", extra={"request_id": request_id, "error_code": error.code})
    return HTTPException(status_code=status_code, detail=error.to_dict())


def unexpected_http_error(error: Exception, request_id: str) -> HTTPException:
    if isinstance(error, SQLAlchemyError):
        logging.error(f"Storage error: {error}", extra={"request_id": request_id})
        aborted = exc.OperationAbortedError(f"Operation aborted, nothing committed: {error.__class__.__name__}")
        return HTTPException(status_code=503, detail=aborted.to_dict())

    logging.error(f"Unexpected error: {error}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")
