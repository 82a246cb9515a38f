"""Exceptions raised by subtranslate."""


class SubtranslateError(Exception):
    """Base class for subtranslate errors."""


class BackendError(SubtranslateError):
    """A translation backend call failed outright.

    Raised for transport, authentication, rate-limit and malformed-response
    failures. It aborts the whole translation and is never retried by the
    batch scheduler, which only retries entries a backend left out.
    """


class ConfigurationError(SubtranslateError):
    """Required configuration is missing or invalid."""
