"""
Error taxonomy shared by the services.

Services raise these; main.py maps them onto HTTP responses. Only TransientError
is ever retried (see utils.retry), and only inside the service that raised it.
"""


class LedgerError(Exception):
    """Base class for domain errors surfaced to callers."""
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(LedgerError):
    """A referenced book, user, review or ledger entry does not exist."""
    status_code = 404


class ConflictError(LedgerError):
    """Duplicate review / shelf entry, self-follow or duplicate follow edge."""
    status_code = 409


class ValidationFailure(LedgerError):
    """Out-of-range rating, malformed shelf or status value, bad progress."""
    status_code = 400


class TransientError(LedgerError):
    """Persistence layer timed out or was unavailable after bounded retries."""
    status_code = 503
