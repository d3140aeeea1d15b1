from __future__ import annotations

from fastapi import HTTPException


class DomainError(Exception):
    """Business-rule or storage failure raised by services and rendered by routers."""

    status_code = 400
    retryable = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(DomainError):
    status_code = 404


class Conflict(DomainError):
    status_code = 409


class ValidationFailed(DomainError):
    status_code = 400


class Forbidden(DomainError):
    status_code = 403


class CouponIneligible(DomainError):
    """
    One of the ordered coupon checks failed.
    `reason` is shown to the end user verbatim; `code` identifies the check.
    """

    status_code = 400

    def __init__(self, code: str, reason: str):
        super().__init__(reason)
        self.code = code
        self.reason = reason


class TransientStorageFailure(DomainError):
    status_code = 503
    retryable = True


def to_http(e: DomainError) -> HTTPException:
    headers = {"Retry-After": "1"} if e.retryable else None
    if isinstance(e, CouponIneligible):
        return HTTPException(
            status_code=e.status_code,
            detail={"code": e.code, "reason": e.reason},
        )
    return HTTPException(status_code=e.status_code, detail=e.detail, headers=headers)
