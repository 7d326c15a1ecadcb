"""
fingerscan - Contactless Fingerprint Capture Pipeline
Quality assessment, ridge enhancement, feature matching and liveness detection
for finger photographs taken with an ordinary camera.
"""

from .models import (
    UNDECIDED, RasterBuffer, Rect, GuideRegion, QualityResult, EnhancementResult,
    FeatureVector, MatchResult, IdentityMatch, Frame, LivenessResult,
    FingerDetection, CaptureOutcome
)
from .exceptions import (
    FingerscanError, ConfigurationError, InvalidImageError, ExtractionError,
    InvalidFeatureVectorError, FrameOrderError, UnknownIdentityError
)
from .quality import QualityAssessor
from .enhancement import ImageEnhancer, export_fixed_format
from .extractor import FeatureExtractor
from .matching import Matcher
from .frames import FrameBuffer, CollectionWindow
from .liveness import LivenessDetector
from .detection import FingerDetector
from .pipeline import CapturePipeline, DirectoryReferenceSource, ReferenceSource

__version__ = "1.0.0"
__all__ = [
    'UNDECIDED', 'RasterBuffer', 'Rect', 'GuideRegion', 'QualityResult', 'EnhancementResult',
    'FeatureVector', 'MatchResult', 'IdentityMatch', 'Frame', 'LivenessResult',
    'FingerDetection', 'CaptureOutcome',
    'FingerscanError', 'ConfigurationError', 'InvalidImageError', 'ExtractionError',
    'InvalidFeatureVectorError', 'FrameOrderError', 'UnknownIdentityError',
    'QualityAssessor', 'ImageEnhancer', 'export_fixed_format', 'FeatureExtractor', 'Matcher',
    'FrameBuffer', 'CollectionWindow', 'LivenessDetector', 'FingerDetector',
    'CapturePipeline', 'DirectoryReferenceSource', 'ReferenceSource',
]
