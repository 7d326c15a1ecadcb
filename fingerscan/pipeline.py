"""fingerscan - Contactless Fingerprint Capture Pipeline

ARCHITECTURE:
- Stateless stages composed by a coordinator:
  * quality.py: Capture quality scoring and acceptance gate
  * enhancement.py: Guide crop + CLAHE + bilateral + unsharp mask
  * extractor.py: Orientation histogram + texture grid feature vector
  * matching.py: Weighted cosine similarity with a closed threshold
  * frames.py / liveness.py: Frame burst buffering and live/spoof decision
  * detection.py: Finger presence trigger for the collection window

PIPELINE:
1. Capture: Quality gate -> Enhancement (only for accepted captures) -> Liveness (warn or block)
2. Matching: Enhance probe and references -> Extract -> Best match per identity

Reference images are provided by the caller through a ReferenceSource; the
pipeline holds no state between calls.
"""

from __future__ import annotations
import json
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from fingerscan.config import IMAGE_EXTENSIONS, PipelineSettings
from fingerscan.detection import FingerDetector
from fingerscan.enhancement import ImageEnhancer, export_fixed_format
from fingerscan.exceptions import UnknownIdentityError
from fingerscan.extractor import FeatureExtractor
from fingerscan.liveness import LivenessDetector
from fingerscan.logger import get_logger, log_analysis
from fingerscan.matching import Matcher
from fingerscan.preprocessing import load_image
from fingerscan.quality import QualityAssessor
from fingerscan.models import (
    CaptureOutcome, FeatureVector, Frame, GuideRegion, IdentityMatch,
    MatchResult, RasterBuffer
)

logger = get_logger("pipeline")


class ReferenceSource(Protocol):
    """Read-only access to the enrolled reference images of an identity."""

    def reference_images_for(self, identity: str) -> Sequence[RasterBuffer]:
        ...


class DirectoryReferenceSource:
    """Reference images stored as one sub-directory per identity.

    Layout: ``<root>/<identity>/<image files>``. Files are read on every call.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def identities(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    def reference_images_for(self, identity: str) -> Sequence[RasterBuffer]:
        folder = self.root / identity
        if not folder.is_dir():
            return []
        return [
            load_image(path) for path in sorted(folder.iterdir())
            if path.suffix.lower() in IMAGE_EXTENSIONS
        ]


class CapturePipeline:
    """End-to-end contactless capture and matching pipeline.

    Attributes:
        settings: Settings of every stage
        assessor: QualityAssessor
        enhancer: ImageEnhancer
        extractor: FeatureExtractor
        matcher: Matcher
        liveness: LivenessDetector
        detector: FingerDetector
    """

    def __init__(self, settings: Optional[PipelineSettings] = None, segmentation=None) -> None:
        """Initialize pipeline.

        Args:
            settings: PipelineSettings (defaults for every stage if None)
            segmentation: Coverage segmentation strategy (edge density if None)
        """
        self.settings = settings or PipelineSettings()
        self.assessor = QualityAssessor(self.settings.quality, segmentation)
        self.enhancer = ImageEnhancer(self.settings.enhancement)
        self.extractor = FeatureExtractor(self.settings.features)
        self.matcher = Matcher(self.settings.matching)
        self.liveness = LivenessDetector(self.settings.liveness)
        self.detector = FingerDetector(self.settings.detection)

    def process_capture(
        self,
        image: RasterBuffer,
        frames: Optional[Sequence[Frame]] = None,
        guide: Optional[GuideRegion] = None
    ) -> CaptureOutcome:
        """Run a captured frame through quality, enhancement and liveness.

        Args:
            image: Chosen raw capture
            frames: Burst collected before the capture (liveness skipped if None)
            guide: Guide rectangle in preview coordinates

        Returns:
            CaptureOutcome. The capture is accepted when the quality gate passes
            and, if ``liveness_blocks_capture`` is set, the burst is judged live.

        Raises:
            InvalidImageError: If the capture has zero area
        """
        warnings: List[str] = []
        quality = self.assessor.assess(image)

        enhancement = None
        if quality.passed:
            enhancement = self.enhancer.enhance(image, guide)
            if enhancement.degraded:
                warnings.append(f"Enhancement degraded: {enhancement.error}")
        else:
            warnings.extend(quality.reasons)

        liveness = None
        liveness_ok = True
        if frames is not None:
            liveness = self.liveness.evaluate(frames)
            if not liveness.is_live:
                liveness_ok = False
                warnings.append(f"Liveness check failed (confidence {liveness.confidence:.2f})")

        accepted = quality.passed and (liveness_ok or not self.settings.liveness_blocks_capture)
        log_analysis("CAPTURE", "ACCEPTED" if accepted else "REJECTED", {
            'quality': f"{quality.overall_score:.3f}",
            'liveness': f"{liveness.confidence:.3f}" if liveness else "n/a",
            'warnings': len(warnings),
        })
        return CaptureOutcome(
            quality=quality,
            enhancement=enhancement,
            liveness=liveness,
            accepted=accepted,
            warnings=tuple(warnings),
        )

    def extract_features(self, image: RasterBuffer, enhance: bool = True,
                         crop: bool = False, guide: Optional[GuideRegion] = None) -> FeatureVector:
        """Enhance (optionally) and extract a feature vector.

        Args:
            image: Raw capture or reference image
            enhance: Run the enhancement chain first
            crop: Crop to the guide (or centred fallback) before enhancing
            guide: Guide rectangle used when ``crop`` is set

        Raises:
            ExtractionError: If the image has zero area
        """
        if enhance:
            result = self.enhancer.enhance(image, guide) if crop else self.enhancer.enhance_without_crop(image)
            image = result.image
        return self.extractor.extract(image)

    def verify(self, probe_image: RasterBuffer, identity: str, source: ReferenceSource,
               crop_probe: bool = False) -> IdentityMatch:
        """1:1 verification of a probe against every reference of an identity.

        Args:
            probe_image: Probe image
            identity: Claimed identity
            source: Provider of the identity's reference images
            crop_probe: Crop the probe to the centred guide region before enhancing

        Returns:
            IdentityMatch holding the best MatchResult over the references

        Raises:
            UnknownIdentityError: If the identity has no reference images
        """
        references = list(source.reference_images_for(identity))
        if not references:
            raise UnknownIdentityError(f"No reference images for identity: {identity}")

        probe = self.extract_features(probe_image, crop=crop_probe)
        vectors = [self.extract_features(reference) for reference in references]
        best = self.matcher.match_best(probe, vectors)

        log_analysis("VERIFY", "MATCH" if best.is_match else "NO_MATCH", {
            'identity': identity,
            'score': f"{best.similarity_score:.4f}",
            'references': len(vectors),
        })
        return IdentityMatch(identity=identity, best=best, reference_count=len(vectors))

    def identify(self, probe_image: RasterBuffer, identities: Sequence[str],
                 source: ReferenceSource, top_k: int = 5,
                 crop_probe: bool = False) -> List[IdentityMatch]:
        """1:N identification over the given identities.

        Identities without references are skipped.

        Returns:
            Up to ``top_k`` IdentityMatches sorted by decreasing similarity
        """
        probe = self.extract_features(probe_image, crop=crop_probe)
        results = []
        for identity in identities:
            references = list(source.reference_images_for(identity))
            if not references:
                logger.warning(f"Skipping identity without references: {identity}")
                continue
            vectors = [self.extract_features(reference) for reference in references]
            results.append(IdentityMatch(
                identity=identity,
                best=self.matcher.match_best(probe, vectors),
                reference_count=len(vectors),
            ))

        results.sort(key=lambda r: r.best.similarity_score, reverse=True)
        return results[:top_k]

    def match_images(self, probe_image: RasterBuffer,
                     reference_images: Sequence[RasterBuffer]) -> List[MatchResult]:
        """Match a probe against each reference image (one result per reference)."""
        probe = self.extract_features(probe_image)
        return [self.matcher.match(probe, self.extract_features(ref)) for ref in reference_images]


# ---------------------------------------------------------------------------
# Main Entry Point


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line interface."""
    import argparse

    from fingerscan.models_serialization import (
        detection_to_dict, enhancement_result_to_dict, feature_vector_to_dict,
        identity_match_to_dict, liveness_result_to_dict, match_result_to_dict,
        quality_result_to_dict
    )
    from fingerscan.preprocessing import encode_png

    parser = argparse.ArgumentParser(
        prog="fingerscan",
        description="fingerscan - Contactless fingerprint quality, enhancement, matching and liveness"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    quality_parser = subparsers.add_parser("quality", help="Assess capture quality")
    quality_parser.add_argument("image", type=Path, help="Raw capture")

    enhance_parser = subparsers.add_parser("enhance", help="Crop and enhance a capture")
    enhance_parser.add_argument("image", type=Path, help="Raw capture")
    enhance_parser.add_argument("--output", "-o", type=Path, required=True, help="Output PNG")
    enhance_parser.add_argument("--export-size", type=int, default=None,
                                help="Resize so the longer side has this length")
    enhance_parser.add_argument("--no-crop", action="store_true", help="Enhance the full image")

    features_parser = subparsers.add_parser("features", help="Extract the feature vector")
    features_parser.add_argument("image", type=Path, help="Image")
    features_parser.add_argument("--no-enhance", action="store_true", help="Skip enhancement")

    match_parser = subparsers.add_parser("match", help="Match a probe against references")
    match_parser.add_argument("probe", type=Path, help="Probe image")
    match_parser.add_argument("references", type=Path, nargs="+", help="Reference images")

    liveness_parser = subparsers.add_parser("liveness", help="Evaluate a frame burst")
    liveness_parser.add_argument("frames", type=Path, nargs="+", help="Frames in capture order")
    liveness_parser.add_argument("--fps", type=float, default=10.0, help="Frame rate of the burst")

    detect_parser = subparsers.add_parser("detect", help="Detect a finger in a preview frame")
    detect_parser.add_argument("image", type=Path, help="Preview frame")

    verify_parser = subparsers.add_parser("verify", help="1:1 verification against a gallery identity")
    verify_parser.add_argument("probe", type=Path, help="Probe image")
    verify_parser.add_argument("identity", help="Claimed identity (gallery sub-directory)")
    verify_parser.add_argument("--gallery", type=Path, required=True,
                               help="Directory with one sub-directory of reference images per identity")

    identify_parser = subparsers.add_parser("identify", help="1:N identification over a gallery")
    identify_parser.add_argument("probe", type=Path, help="Probe image")
    identify_parser.add_argument("--gallery", type=Path, required=True,
                                 help="Directory with one sub-directory of reference images per identity")
    identify_parser.add_argument("--top-k", type=int, default=5, help="Number of candidates to report")

    args = parser.parse_args(argv)
    pipeline = CapturePipeline()

    if args.command == "quality":
        _print_json(quality_result_to_dict(pipeline.assessor.assess(load_image(args.image))))

    elif args.command == "enhance":
        image = load_image(args.image)
        if args.no_crop:
            result = pipeline.enhancer.enhance_without_crop(image)
        else:
            result = pipeline.enhancer.enhance(image)
        output = result.image
        if args.export_size:
            output = export_fixed_format(output, args.export_size)
        args.output.write_bytes(encode_png(output))
        _print_json({**enhancement_result_to_dict(result), 'output': str(args.output)})

    elif args.command == "features":
        image = load_image(args.image)
        _print_json(feature_vector_to_dict(pipeline.extract_features(image, enhance=not args.no_enhance)))

    elif args.command == "match":
        results = pipeline.match_images(load_image(args.probe), [load_image(p) for p in args.references])
        best = max(results, key=lambda r: r.similarity_score)
        _print_json({
            'best': match_result_to_dict(best),
            'references': [
                {'path': str(path), **match_result_to_dict(result)}
                for path, result in zip(args.references, results)
            ],
        })

    elif args.command == "liveness":
        frames = [Frame(load_image(path), i / args.fps) for i, path in enumerate(args.frames)]
        _print_json(liveness_result_to_dict(pipeline.liveness.evaluate(frames)))

    elif args.command == "detect":
        _print_json(detection_to_dict(pipeline.detector.detect(load_image(args.image))))

    elif args.command == "verify":
        source = DirectoryReferenceSource(args.gallery)
        try:
            result = pipeline.verify(load_image(args.probe), args.identity, source)
        except UnknownIdentityError as e:
            logger.error(str(e))
            print(f"Error: {e}")
            return 1
        _print_json(identity_match_to_dict(result))

    elif args.command == "identify":
        source = DirectoryReferenceSource(args.gallery)
        results = pipeline.identify(load_image(args.probe), source.identities(), source, top_k=args.top_k)
        _print_json([identity_match_to_dict(r) for r in results])

    else:
        parser.print_help()
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
