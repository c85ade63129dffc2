from __future__ import annotations


class LightDBError(Exception):
    """Base class for every error raised by lightdb."""


class InvalidKeyError(LightDBError, TypeError):
    """A dot-path key (or collection name) is malformed."""


class InvalidValueError(LightDBError, ValueError):
    """An operand has the wrong type or shape for the requested operation."""


class MissingEncryptionKeyError(LightDBError):
    def __init__(self, message: str = "Missing encryption key") -> None:
        super().__init__(message)


class DecryptionError(LightDBError):
    def __init__(self, message: str = "An error has occurred while decrypting a value") -> None:
        super().__init__(message)


class StorageError(LightDBError):
    """Reading or writing a backing file failed."""


class StorageAccessDeniedError(StorageError):
    pass


class StorageInvalidPathError(StorageError):
    pass


class CollectionAlreadyExistsError(LightDBError):
    pass


class CollectionNotFoundError(LightDBError, KeyError):
    def __str__(self) -> str:
        # KeyError would repr() the message
        return str(self.args[0]) if self.args else ""
