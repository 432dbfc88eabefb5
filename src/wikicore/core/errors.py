"""Error taxonomy shared by the permission, search and revision services."""

from __future__ import annotations


class WikiError(RuntimeError):
    """Base class for all engine errors."""


class NotFoundError(WikiError):
    """Raised when a post or revision does not exist."""

    def __init__(self, kind: str, identifier: object) -> None:
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class DeniedError(WikiError):
    """Raised when the caller lacks the permission an operation requires."""

    def __init__(self, post_id: int, permission: str) -> None:
        super().__init__(f"Permission '{permission}' denied on post {post_id}")
        self.post_id = post_id
        self.permission = permission


class ConflictError(WikiError):
    """Raised when a commit repeatedly loses the revision sequence race."""


class ValidationFailure(WikiError):
    """Raised for malformed request input such as filter values or permission constants."""


class EncryptionFailure(WikiError):
    """Raised when content cannot be encrypted or decrypted.

    Always fatal to the operation; ciphertext is never handed back as plaintext.
    """


class ParserUnavailable(WikiError):
    """Raised when no parser is registered for a post format."""
