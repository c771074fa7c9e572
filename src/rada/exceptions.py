"""Domain errors raised by the ledger services.

Routers never catch these individually; the global handler in
``rada.middleware.error_handler`` maps ``status_code`` to the response.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for caller-visible ledger errors."""

    status_code: int = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class UnknownUser(LedgerError):
    status_code = 404

    def __init__(self, key: object) -> None:
        super().__init__(f"Unknown user: {key}")
        self.key = key


class AlreadyAttempted(LedgerError):
    """Second submission for the same (user, challenge)."""

    status_code = 409

    def __init__(self, challenge_id: int) -> None:
        super().__init__("Challenge already attempted")
        self.challenge_id = challenge_id


class AlreadyReversed(LedgerError):
    status_code = 409

    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Ledger entry {entry_id} has already been reversed")
        self.entry_id = entry_id


class LedgerEntryNotFound(LedgerError):
    status_code = 404

    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Ledger entry {entry_id} not found")
        self.entry_id = entry_id


class ChallengeNotFound(LedgerError):
    status_code = 404

    def __init__(self, challenge_id: int) -> None:
        super().__init__(f"Challenge {challenge_id} not found")
        self.challenge_id = challenge_id


class ChallengeNotAvailable(LedgerError):
    status_code = 409

    def __init__(self, challenge_id: int) -> None:
        super().__init__(f"Challenge {challenge_id} is not published yet")
        self.challenge_id = challenge_id


class InvalidAward(LedgerError):
    status_code = 422


class InvalidReversal(LedgerError):
    status_code = 422
