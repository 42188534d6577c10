# =============================================================================
# RepairIQ - Scan Orchestrator
# =============================================================================
# Sequences one scan: capture a frame from the active source, classify it on
# the server, resolve an explanation, and publish the result.
#
# Only one scan is in flight per orchestrator.  Starting a scan cancels the
# previous one, and every scan carries a generation number that is checked
# before publishing, so a slow, older scan can never overwrite a newer result.
# =============================================================================

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from scanner.client import ClassificationClient, ClassificationError
from scanner.explainer import Explanation, ExplanationResolver
from scanner.sources import FrameSource, FrameSourceKind, SourceNotReadyError

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "unknown"


def _describe(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


@dataclass(frozen=True)
class ScanOutcome:
    """
    A completed scan.

    Attributes:
        scan_id:     Generation number of the scan.
        label:       Predicted component label.
        confidence:  Server-reported confidence in [0, 1].
        explanation: Generated or fallback explanation for ``label``.
        is_unknown:  Low confidence or "Unknown" label; the presentation
                     layer should offer a rescan instead of details.
    """

    scan_id: int
    label: str
    confidence: float
    explanation: Explanation
    is_unknown: bool


@dataclass(frozen=True)
class ScanFailure:
    """A scan stopped at ``stage`` ("capture" or "classify")."""

    scan_id: int
    stage: str
    message: str


ScanResult = Union[ScanOutcome, ScanFailure]


class ScanOrchestrator:
    """
    Runs capture → classify → explain → publish for the selected source.

    Args:
        sources:                  Available frame sources by kind.
        classifier:               Client for the classification server.
        explainer:                Resolver for label explanations.
        publish:                  Callback receiving each current result.
        low_confidence_threshold: Confidence below which a result is unknown.
        initial_source:           Source selected at start.
    """

    def __init__(
        self,
        sources: Dict[FrameSourceKind, FrameSource],
        classifier: ClassificationClient,
        explainer: ExplanationResolver,
        publish: Callable[[ScanResult], None],
        low_confidence_threshold: float = 0.3,
        initial_source: FrameSourceKind = FrameSourceKind.LOCAL_CAMERA,
    ):
        if initial_source not in sources:
            raise ValueError(f"No frame source registered for {initial_source.value}")
        self._sources = dict(sources)
        self._classifier = classifier
        self._explainer = explainer
        self._publish = publish
        self._threshold = low_confidence_threshold
        self._active_kind = initial_source
        self._generation = 0
        self._current: Optional[asyncio.Task] = None

    @property
    def active_kind(self) -> FrameSourceKind:
        return self._active_kind

    @property
    def active_source(self) -> FrameSource:
        return self._sources[self._active_kind]

    def select_source(self, kind: FrameSourceKind) -> None:
        """
        Make ``kind`` the source for subsequent scans.

        Raises:
            ValueError: If no source of that kind is registered.
        """
        if kind not in self._sources:
            raise ValueError(f"No frame source registered for {kind.value}")
        if kind != self._active_kind:
            logger.info("Frame source: %s -> %s", self._active_kind.value, kind.value)
        self._active_kind = kind

    def on_phone_disconnected(self, phone_id: Optional[int]) -> None:
        """Fall back to the local camera when the relayed phone goes away."""
        if self._active_kind != FrameSourceKind.RELAYED_PHONE:
            return
        if FrameSourceKind.LOCAL_CAMERA in self._sources:
            logger.info("Phone %s disconnected; switching to local camera", phone_id)
            self.select_source(FrameSourceKind.LOCAL_CAMERA)

    def is_unknown(self, label: str, confidence: float) -> bool:
        return confidence < self._threshold or label.strip().lower() == UNKNOWN_LABEL

    def start_scan(self) -> asyncio.Task:
        """Start a new scan, superseding any scan still in flight."""
        if self._current is not None and not self._current.done():
            logger.info("Cancelling scan %d in favour of a new scan", self._generation)
            self._current.cancel()

        self._generation += 1
        self._current = asyncio.create_task(self._run(self._generation))
        return self._current

    async def scan(self) -> Optional[ScanResult]:
        """
        Run one scan to completion.

        Returns:
            The published result, or None if a newer scan superseded it.
        """
        task = self.start_scan()
        try:
            return await task
        except asyncio.CancelledError:
            if task is not self._current:
                return None
            raise

    def _is_current(self, scan_id: int) -> bool:
        return scan_id == self._generation

    def _emit(self, result: ScanResult) -> Optional[ScanResult]:
        if not self._is_current(result.scan_id):
            logger.info("Discarding stale result of scan %d", result.scan_id)
            return None
        self._publish(result)
        return result

    async def _run(self, scan_id: int) -> Optional[ScanResult]:
        source = self.active_source
        logger.debug("Scan %d: capturing from %s", scan_id, source.kind.value)

        # Step 1: Acquire a frame
        try:
            image = await source.capture_frame()
        except SourceNotReadyError as exc:
            return self._emit(ScanFailure(scan_id=scan_id, stage="capture", message=str(exc)))
        except Exception as exc:
            logger.exception("Scan %d: unexpected capture failure", scan_id)
            return self._emit(ScanFailure(scan_id=scan_id, stage="capture", message=_describe(exc)))

        # Step 2: Classify on the server
        try:
            prediction = await asyncio.to_thread(
                self._classifier.classify, image, source.mime_type
            )
        except ClassificationError as exc:
            return self._emit(ScanFailure(scan_id=scan_id, stage="classify", message=str(exc)))
        except Exception as exc:
            logger.exception("Scan %d: unexpected classification failure", scan_id)
            return self._emit(ScanFailure(scan_id=scan_id, stage="classify", message=_describe(exc)))

        if not self._is_current(scan_id):
            logger.info("Scan %d superseded before explanation", scan_id)
            return None

        # Step 3: Explain (never fails; falls back to static text)
        explanation = await self._explainer.resolve(prediction.component)

        # Step 4: Publish if still the newest scan
        return self._emit(ScanOutcome(
            scan_id=scan_id,
            label=prediction.component,
            confidence=prediction.confidence,
            explanation=explanation,
            is_unknown=self.is_unknown(prediction.component, prediction.confidence),
        ))
