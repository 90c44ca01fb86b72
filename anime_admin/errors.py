"""Exception hierarchy for anime-admin."""


class AnimeAdminError(Exception):
    """Base exception for all anime-admin errors."""


class ValidationError(AnimeAdminError):
    """Raised when input to a public operation is malformed."""


class NotFoundError(AnimeAdminError):
    """Raised when a referenced anime, episode or profile does not exist."""


# ── Metadata providers ────────────────────────────────────────────────
class ProviderError(AnimeAdminError):
    """Raised when a metadata provider request fails."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class AllProvidersFailedError(ProviderError):
    """Raised when every provider in a fallback chain failed."""

    def __init__(self, errors: list[ProviderError]):
        joined = "; ".join(str(e) for e in errors) or "no providers configured"
        super().__init__("all", joined)
        self.errors = errors


# ── File management ───────────────────────────────────────────────────
class FileOperationError(AnimeAdminError):
    """Raised on file move, copy or delete failures."""


class RollbackError(FileOperationError):
    """Raised when undoing a file move failed and disk and database diverge."""


# ── Persistence ───────────────────────────────────────────────────────
class StoreError(AnimeAdminError):
    """Raised when the database rejects an operation."""
