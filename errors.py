"""Error taxonomy for EvoArena. None of these is fatal to a running process."""


class EvoArenaError(Exception):
    """Base class for all EvoArena errors."""


class ValidationError(EvoArenaError):
    """Parameter data has the wrong shape or type and was rejected."""


class StorageError(EvoArenaError):
    """Reading or writing persisted parameters failed."""


class NotFoundError(EvoArenaError):
    """No saved parameters exist yet."""
