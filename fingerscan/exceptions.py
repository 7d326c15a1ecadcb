"""Exception hierarchy for fingerscan."""


class FingerscanError(Exception):
    """Base exception for all pipeline errors."""


class ConfigurationError(FingerscanError, ValueError):
    """Raised when settings are out of range or inconsistent."""


class InvalidImageError(FingerscanError, ValueError):
    """Raised when an image is malformed, unreadable or has zero area."""


class ExtractionError(FingerscanError):
    """Raised when no feature vector can be produced from an image."""


class InvalidFeatureVectorError(FingerscanError, ValueError):
    """Raised when feature vectors cannot be compared."""


class FrameOrderError(FingerscanError, ValueError):
    """Raised when a frame is pushed with a timestamp older than the newest frame."""


class UnknownIdentityError(FingerscanError, LookupError):
    """Raised when an identity has no reference images."""
