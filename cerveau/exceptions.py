"""
Custom exceptions for Cerveau
"""

__all__ = [
    "CerveauError",
    "ConfigurationError",
    "CameraUnavailable",
    "FrameNotReady",
    "InferenceError",
    "TransportError",
    "QuotaError",
    "AuthError",
    "MissingCredentialError",
]


class CerveauError(Exception):
    """Base exception for all Cerveau errors"""
    pass


class ConfigurationError(CerveauError):
    """Configuration error"""
    pass


class CameraUnavailable(CerveauError):
    """Camera permission denied, device missing or failed to open"""
    pass


class FrameNotReady(CerveauError):
    """Stream has not produced a usable frame yet"""
    pass


class InferenceError(CerveauError):
    """Remote inference call failed"""
    pass


class TransportError(InferenceError):
    """Network, timeout or protocol error talking to the model endpoint"""
    pass


class QuotaError(InferenceError):
    """Rate limit or quota exhausted on the model endpoint"""
    pass


class AuthError(InferenceError):
    """Credential rejected by the model endpoint"""
    pass


class MissingCredentialError(AuthError):
    """No API key configured"""
    pass
