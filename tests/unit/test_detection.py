"""Unit tests for funnel stage detection"""

import asyncio
import itertools
import pytest
from pathlib import Path
import sys

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from src.funnel.config import StageSignatureOverride
from src.funnel.detection import (
    STAGE_SIGNATURES,
    StageDetector,
    build_signatures,
    location_matches,
    stages_present,
)
from src.funnel.models import FunnelStage, STAGE_ORDER
from funnel_fakes import FakeElement

BASE = "https://quotes.example.test/auto"


class TestLocationMatching:
    """Test path-segment location matching"""

    def test_whole_segment_only(self):
        """Test /Driver does not match the DriverList page"""
        assert location_matches(f"{BASE}/Driver", ["/Driver"])
        assert not location_matches(f"{BASE}/DriverList", ["/Driver"])

    def test_case_insensitive_and_hash_routes(self):
        """Test matching ignores case and looks at the hash route"""
        assert location_matches(f"{BASE}/policyinfo", ["/PolicyInfo"])
        assert location_matches(f"{BASE}#/QuoteResults", ["/QuoteResults"])

    def test_no_fragments(self):
        """Test stages without fragments never match on location"""
        assert not location_matches(f"{BASE}/Prefill", [])


class TestStagesPresent:
    """Test the snapshot classifier"""

    def test_each_signature_alone_identifies_one_stage(self):
        """Test each stage's own signal selects exactly that stage"""
        for stage in STAGE_ORDER:
            signature = STAGE_SIGNATURES[stage]
            if signature.fragments:
                url = f"{BASE}{signature.fragments[0]}"
                assert stages_present(url, set()) == [stage]
            assert stages_present(BASE, {signature.marker}) == [stage]

    def test_mutually_exclusive_for_any_single_page(self):
        """Test a page showing one stage's url and marker is never classified as two"""
        for stage in STAGE_ORDER:
            signature = STAGE_SIGNATURES[stage]
            urls = [f"{BASE}{fragment}" for fragment in signature.fragments] or [BASE]
            for url, markers in itertools.product(urls, [set(), {signature.marker}]):
                present = stages_present(url, markers)
                assert present in ([], [stage]), (stage, url, markers, present)

    def test_candidates_limit_classification(self):
        """Test stages outside the candidate list are ignored"""
        present = stages_present(f"{BASE}/VehicleUsage", {"#pg2"}, [FunnelStage.DRIVER_INFO])
        assert present == []


class TestBuildSignatures:
    """Test configuration overrides"""

    def test_defaults_without_overrides(self):
        """Test the defaults are returned untouched"""
        assert build_signatures({}) is STAGE_SIGNATURES

    def test_override_marker_keeps_fragments(self):
        """Test a marker override keeps the default fragments"""
        signatures = build_signatures({"QuoteResults": StageSignatureOverride(marker="#results")})

        assert signatures[FunnelStage.QUOTE_RESULTS].marker == "#results"
        assert signatures[FunnelStage.QUOTE_RESULTS].fragments == ("/QuoteResults",)
        assert STAGE_SIGNATURES[FunnelStage.QUOTE_RESULTS].marker == "#pgResults"

    def test_unknown_stage_name_rejected(self):
        """Test an override for an unknown stage fails loudly"""
        with pytest.raises(ValueError):
            build_signatures({"Checkout": StageSignatureOverride(marker="#x")})


class TestStageDetector:
    """Test racing detection probes against the fake driver"""

    @pytest.mark.asyncio
    async def test_detects_by_marker(self, engine, fake_driver):
        """Test a visible marker identifies the stage"""
        fake_driver.add("#pg4", FakeElement())
        detector = StageDetector(engine, probe_timeout_ms=100)

        stage = await detector.detect(STAGE_ORDER[1:])
        assert stage is FunnelStage.DRIVER_INFO

    @pytest.mark.asyncio
    async def test_detects_by_location(self, engine, fake_driver):
        """Test the location alone identifies the stage"""
        fake_driver.url = f"{BASE}/CoverageOptions"
        detector = StageDetector(engine, probe_timeout_ms=100)

        stage = await detector.detect(STAGE_ORDER[1:])
        assert stage is FunnelStage.COVERAGE_OPTIONS

    @pytest.mark.asyncio
    async def test_hidden_marker_is_not_a_signal(self, engine, fake_driver):
        """Test a present but hidden container does not count"""
        fake_driver.add("#pg2", FakeElement(visible=False))
        detector = StageDetector(engine, probe_timeout_ms=30)

        assert await detector.detect(STAGE_ORDER[1:]) is None

    @pytest.mark.asyncio
    async def test_earlier_stages_not_candidates(self, engine, fake_driver):
        """Test a stage already handled is never detected again"""
        fake_driver.add("#pg1", FakeElement())
        detector = StageDetector(engine, probe_timeout_ms=30)

        candidates = STAGE_ORDER[FunnelStage.VEHICLE_USAGE.order:]
        assert await detector.detect(candidates) is None

    @pytest.mark.asyncio
    async def test_marker_appearing_later(self, engine, fake_driver):
        """Test a marker that shows up during polling is detected"""
        async def reveal():
            await asyncio.sleep(0.02)
            fake_driver.add("#pgThankYou", FakeElement())

        detector = StageDetector(engine, probe_timeout_ms=500)
        task = asyncio.ensure_future(reveal())
        stage = await detector.detect([FunnelStage.ALSO_INTERESTED, FunnelStage.THANK_YOU])
        await task

        assert stage is FunnelStage.THANK_YOU
