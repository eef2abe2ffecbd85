"""Typed failures raised by the record store, the relationship engine and the tenant guard."""


class StoreError(Exception):
    """Base class. `error` is the wire code, `status_code` the HTTP mapping."""
    error = "store_error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.error)
        self.message = message or self.error

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class HeaderMissing(StoreError):
    error = "header_missing"
    status_code = 400


class InvalidRequest(StoreError):
    error = "invalid_request"
    status_code = 400


class TabNotFound(StoreError):
    error = "tab_not_found"
    status_code = 404


class IdColumnNotFound(StoreError):
    error = "id_column_not_found"
    status_code = 400


class RecordNotFound(StoreError):
    error = "not_found"
    status_code = 404


class CrossTenantBlocked(StoreError):
    error = "cross_tenant_row_blocked"
    status_code = 403


class SpouseUnavailable(StoreError):
    error = "spouse_unavailable"
    status_code = 409

    def __init__(self, spouse_id: str, current_spouse_id: str | None):
        super().__init__(f"{spouse_id} is already paired with {current_spouse_id}")
        self.spouse_id = spouse_id
        self.current_spouse_id = current_spouse_id

    def to_dict(self) -> dict:
        return {
            "error": self.error,
            "message": self.message,
            "spouseId": self.spouse_id,
            "currentSpouseId": self.current_spouse_id,
        }


class RemoteTimeout(StoreError):
    error = "remote_timeout"
    status_code = 504


class RemoteFailure(StoreError):
    error = "remote_failure"
    status_code = 502

    def __init__(self, message: str = "", remote_status: int | None = None):
        super().__init__(message)
        self.remote_status = remote_status


# ── Tenant guard ──

class Unauthenticated(StoreError):
    error = "unauthorized"
    status_code = 401


class Forbidden(StoreError):
    error = "forbidden"
    status_code = 403
