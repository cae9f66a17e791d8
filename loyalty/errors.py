"""Exceptions raised by the loyalty tier engine."""


class LoyaltyError(Exception):
    """Base class for loyalty engine errors."""


class ClientNotFound(LoyaltyError, KeyError):
    """Raised when a client id has no persisted loyalty state."""

    def __init__(self, client_id: str):
        super().__init__(client_id)
        self.client_id = client_id

    def __str__(self) -> str:
        return f"Client not found: {self.client_id}"


class PersistenceFailure(LoyaltyError):
    """Raised when loyalty state cannot be loaded or saved."""


class InvalidAdjustment(LoyaltyError, ValueError):
    """Raised when a manual override carries an unusable value."""
