"""Stage detection: which funnel page is the browser showing?

A stage is present when the browser location matches one of its location
fragments, or its distinguishing page container is visible.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple
from urllib.parse import urlparse
from loguru import logger

from src.browser.interaction import race_first
from src.funnel.models import FunnelStage


@dataclass(frozen=True)
class StageSignature:
    fragments: Tuple[str, ...] = ()
    marker: Optional[str] = None


# =============================================================================
# STAGE SIGNATURES
# =============================================================================

STAGE_SIGNATURES: Mapping[FunnelStage, StageSignature] = MappingProxyType({
    FunnelStage.PERSONAL_INFO: StageSignature((), "#pg0"),
    FunnelStage.VEHICLE_LOOKUP: StageSignature(("/Prefill",), "#pgPrefill"),
    FunnelStage.VIN_ENTRY: StageSignature((), "#pgVinEnty"),
    FunnelStage.VEHICLE_DETAILS: StageSignature((), "#pg1"),
    FunnelStage.VEHICLE_USAGE: StageSignature(("/VehicleUsage",), "#pg2"),
    FunnelStage.VEHICLE_LIST: StageSignature(("/VehicleList",), "#pg3"),
    FunnelStage.DRIVER_INFO: StageSignature(("/Driver",), "#pg4"),
    FunnelStage.DRIVER_LIST: StageSignature(("/DriverList",), "#pg5"),
    FunnelStage.POLICY_INFO: StageSignature(("/PolicyInfo",), "#pg6"),
    FunnelStage.COVERAGE_OPTIONS: StageSignature(("/CoverageOptions",), "#pg7"),
    FunnelStage.PROPERTY_INFO: StageSignature(("/PropertyInfo",), "#pg8"),
    FunnelStage.QUOTE_RESULTS: StageSignature(("/QuoteResults",), "#pgResults"),
    FunnelStage.CONTACT_METHOD: StageSignature(("/ContactMethod",), "#pgContactMethod"),
    FunnelStage.ALSO_INTERESTED: StageSignature(("/AlsoInterested",), "#pgAddlLob"),
    FunnelStage.THANK_YOU: StageSignature(("/ThankYou", "/Complete"), "#pgThankYou"),
})


def build_signatures(overrides: Optional[Dict[str, object]] = None) -> Mapping[FunnelStage, StageSignature]:
    """Default signatures with per-stage overrides from config applied"""
    if not overrides:
        return STAGE_SIGNATURES

    signatures = dict(STAGE_SIGNATURES)
    for name, override in overrides.items():
        stage = FunnelStage(name)
        current = signatures[stage]
        fragments = getattr(override, "fragments", None)
        marker = getattr(override, "marker", None)
        signatures[stage] = StageSignature(
            tuple(fragments) if fragments is not None else current.fragments,
            marker if marker is not None else current.marker,
        )
    return MappingProxyType(signatures)


def _location_segments(url: str) -> List[str]:
    parsed = urlparse(url or "")
    # Client-side routes may live in the hash part
    path = f"{parsed.path}/{parsed.fragment}"
    return [segment.lower() for segment in path.split("/") if segment]


def location_matches(url: str, fragments: Iterable[str]) -> bool:
    """True when any fragment equals a whole path segment of url (case-insensitive)"""
    segments = _location_segments(url)
    for fragment in fragments:
        wanted = fragment.strip("/").lower()
        if wanted and wanted in segments:
            return True
    return False


def stages_present(
    url: str,
    visible_markers: Set[str],
    candidates: Optional[Sequence[FunnelStage]] = None,
    signatures: Mapping[FunnelStage, StageSignature] = STAGE_SIGNATURES
) -> List[FunnelStage]:
    """Classify a page snapshot: every candidate stage whose signal is present"""
    present = []
    for stage in candidates or list(FunnelStage):
        signature = signatures[stage]
        if location_matches(url, signature.fragments) or (
            signature.marker is not None and signature.marker in visible_markers
        ):
            present.append(stage)
    return present


class StageDetector:
    """Races location and marker probes for a set of candidate stages"""

    def __init__(
        self,
        engine,
        signatures: Mapping[FunnelStage, StageSignature] = STAGE_SIGNATURES,
        probe_timeout_ms: int = 10000
    ):
        self.engine = engine
        self.signatures = signatures
        self.probe_timeout_ms = probe_timeout_ms

    def _location_probe(self, fragments: Tuple[str, ...], timeout_ms: int):
        async def probe() -> bool:
            return await self.engine.poll_until(
                lambda: self._location_now(fragments), timeout_ms
            )
        return probe

    async def _location_now(self, fragments: Tuple[str, ...]) -> bool:
        return location_matches(self.engine.driver.url, fragments)

    def _marker_probe(self, marker: str, timeout_ms: int):
        async def probe() -> bool:
            return await self.engine.poll_until(lambda: self.engine.is_visible(marker), timeout_ms)
        return probe

    async def detect(
        self,
        candidates: Sequence[FunnelStage],
        timeout_ms: Optional[int] = None
    ) -> Optional[FunnelStage]:
        """
        Detect which candidate stage is showing.

        Args:
            candidates: Stages that may legitimately appear next
            timeout_ms: Bound for every probe (defaults to probe_timeout_ms)

        Returns:
            The detected stage, or None if no signal fired in time
        """
        timeout_ms = self.probe_timeout_ms if timeout_ms is None else timeout_ms
        probes = {}
        for stage in candidates:
            signature = self.signatures[stage]
            if signature.fragments:
                probes[(stage, "location")] = self._location_probe(signature.fragments, timeout_ms)
            if signature.marker:
                probes[(stage, "marker")] = self._marker_probe(signature.marker, timeout_ms)

        winner = await race_first(probes, timeout_ms, self.engine.correlation_id)
        if winner is None:
            logger.debug(
                f"[{self.engine.correlation_id}] No stage detected among "
                f"{[s.value for s in candidates]} within {timeout_ms}ms"
            )
            return None

        stage, signal = winner
        logger.info(f"[{self.engine.correlation_id}] Detected stage {stage.value} via {signal}")
        return stage
