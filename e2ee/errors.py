"""Error taxonomy for the client-side encryption stack."""


class E2EEError(Exception):
    """Base exception for end-to-end encryption failures"""
    pass


class KeyUnavailable(E2EEError):
    """The local identity keypair is missing, unreadable or could not be persisted."""
    pass


class PeerKeyNotFound(E2EEError):
    """The key directory has no usable public key for the peer."""
    pass


class AgreementFailure(E2EEError):
    """The peer key is malformed or the X25519 agreement itself failed."""
    pass


class AuthenticationFailure(E2EEError):
    """A sealed payload failed its integrity check (wrong key, truncated or tampered)."""
    pass
