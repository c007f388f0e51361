"""
Domain errors shared by all apps.

Services raise these; views turn them into JSON with common.http.json_view.
The message is safe to show to the caller. Keyword details are returned next
to it (e.g. current_balance / required_balance for InsufficientBalance).
"""


class DomainError(Exception):
    status_code = 400
    default_message = "Request could not be processed."

    def __init__(self, message: str = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def as_dict(self) -> dict:
        payload = {"error": self.message}
        payload.update(self.details)
        return payload


class InvalidRequest(DomainError):
    default_message = "Invalid request."


class Unauthorized(DomainError):
    status_code = 401
    default_message = "Unauthorized. Please sign in."


class Forbidden(DomainError):
    status_code = 403
    default_message = "Forbidden"


class NotAReader(Forbidden):
    default_message = "Only readers can request payouts"


class ReaderNotFound(DomainError):
    status_code = 404
    default_message = "Reader not found"


class SessionNotFound(DomainError):
    status_code = 404
    default_message = "Session not found"


class ReaderUnavailable(DomainError):
    default_message = "Reader is not available"


class ServiceNotOffered(DomainError):
    default_message = "Reader does not offer this service type"


class SessionNotActive(DomainError):
    default_message = "Session is not active"


class InvalidState(DomainError):
    default_message = "Cannot cancel this session"


class InsufficientBalance(DomainError):
    default_message = "Insufficient balance"


class BelowMinimum(DomainError):
    default_message = "Amount is below the minimum"


class TopUpError(DomainError):
    default_message = "Balance top-up could not be processed."


class PaymentsUnavailable(TopUpError):
    status_code = 503
    default_message = "Payment is not configured. Please try again later."


class LedgerError(Exception):
    """Ledger integrity violation (e.g. attempt to edit a Transaction). Never shown to users."""
    pass
