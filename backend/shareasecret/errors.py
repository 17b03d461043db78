"""Exception hierarchy shared by the identifier generator, store and lifecycle."""


class ShareASecretError(Exception):
    pass


class InvalidSecretInput(ShareASecretError):
    """The client sent something we cannot store. The message is safe to show."""


class SecretNotFound(ShareASecretError):
    """Unknown or deleted identifier. The two cases are deliberately not distinguished."""


class GenerationFailure(ShareASecretError):
    """The operating system entropy source failed."""


class StoreError(ShareASecretError):
    pass


class DuplicateIdentifier(StoreError):
    pass


class PersistenceFailure(StoreError):
    pass


class LifecycleError(ShareASecretError):
    """Internal failure already logged by the lifecycle. Carries no client-facing detail."""
