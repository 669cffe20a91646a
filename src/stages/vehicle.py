"""Vehicle stages: lookup, VIN entry, details, usage, and the vehicle list"""

from typing import List, Optional
from loguru import logger

from src.funnel.models import FunnelStage, StageResult, VehicleRecord
from src.stages.base import BaseStage, StageContext


# =============================================================================
# VEHICLE SELECTORS
# =============================================================================

PREFILL_MANUAL_ENTRY = "#pgPrefillNo"

VIN_INPUT = "#VehicleVIN"
VIN_SUBMIT = "#pgVinEntryStart"
VIN_MANUAL_ENTRY = "#pgVinEntyNo"

YEAR_SELECTOR = "#VehicleYear"
MAKE_SELECTOR = "#VehicleMake"
MAKE_PANEL = "#VehMakePanel"
MODEL_SELECTOR = "#VehicleModel"
MODEL_PANEL = "#VehModelPanel"
DETAILS_CONTINUE = "#pg1btn"

USAGE_SELECTOR = "#vehUsage"
OWNERSHIP_PANEL = "#vehOwnershipPan"
OWNERSHIP_SELECTOR = "#vehOwnership"
GARAGED_PANEL = "#GaragedPan"
GARAGED_SELECTOR = "#Garaged"
LENGTH_OF_OWNERSHIP_PANEL = "#vehLenOfOwnershipPan"
LENGTH_OF_OWNERSHIP_SELECTOR = "#vehLenOfOwnership"
USAGE_CONTINUE = "#pg2btn"

GARAGING_DIALOG = "#garagingAddressPan"
GARAGING_ZIP = "#GaragingZipCode"
GARAGING_STATE = "#GaragingState"
GARAGING_ADDRESS = "#GaragingAddress"
GARAGING_SUBMIT = "#GarZipBtn"
DEFAULT_GARAGING = "0"

VEHICLE_COUNT = "#carCount"
LIST_CONTINUE = "#pg3btn"


def indexed_vehicle_selectors(field: str, index: int) -> List[str]:
    """Candidate ids for the n-th vehicle's field, e.g. #VehicleYear_1, #vehicleYear1"""
    return [f"#Vehicle{field}_{index}", f"#vehicle{field}{index}"]


class VehicleLookupStage(BaseStage):
    """Prefill offer: always choose manual entry"""

    stage = FunnelStage.VEHICLE_LOOKUP
    continue_selector = PREFILL_MANUAL_ENTRY

    async def handle(self, ctx: StageContext) -> StageResult:
        await self.advance(ctx)
        return self.success("Chose manual vehicle entry")


class VinEntryStage(BaseStage):
    """Submit the VIN when one was supplied, otherwise enter the vehicle manually"""

    stage = FunnelStage.VIN_ENTRY
    continue_selector = VIN_MANUAL_ENTRY

    async def handle(self, ctx: StageContext) -> StageResult:
        vehicle = ctx.primary_vehicle
        if vehicle and vehicle.vin and (await ctx.engine.probe(VIN_INPUT)).exists:
            if await ctx.engine.set_text(VIN_INPUT, vehicle.vin):
                await self.advance(ctx, VIN_SUBMIT)
                return self.success("Submitted VIN")
            logger.warning(f"[{ctx.correlation_id}] VIN did not stick, falling back to manual entry")

        await self.advance(ctx)
        return self.success("Chose manual vehicle entry")


class VehicleDetailsStage(BaseStage):
    """Year, make, model against dependent dropdowns"""

    stage = FunnelStage.VEHICLE_DETAILS
    continue_selector = DETAILS_CONTINUE

    async def handle(self, ctx: StageContext) -> StageResult:
        vehicle = ctx.primary_vehicle
        if vehicle is None:
            return self.failure("No vehicle supplied for vehicle details")

        engine = ctx.engine
        timeout_ms = ctx.timeouts.dropdown_ms

        await engine.select_option(YEAR_SELECTOR, vehicle.year)
        await engine.wait_for_ready(
            lambda: engine.dropdown_populated(MAKE_SELECTOR, MAKE_PANEL), timeout_ms, "vehicle makes to load"
        )
        await engine.select_option(MAKE_SELECTOR, vehicle.make)
        await engine.wait_for_ready(
            lambda: engine.dropdown_populated(MODEL_SELECTOR, MODEL_PANEL), timeout_ms, "vehicle models to load"
        )
        await engine.select_option(MODEL_SELECTOR, vehicle.model)

        await engine.wait_for_ready(
            lambda: self._continue_enabled(ctx), ctx.timeouts.continue_enabled_ms, "vehicle continue button"
        )
        await self.advance(ctx)
        return self.success(f"Vehicle details entered: {vehicle.description}")

    async def _continue_enabled(self, ctx: StageContext) -> bool:
        probe = await ctx.engine.probe(DETAILS_CONTINUE)
        return probe.visible and probe.enabled


class VehicleUsageStage(BaseStage):
    """Usage, ownership, garaging and length of ownership"""

    stage = FunnelStage.VEHICLE_USAGE
    continue_selector = USAGE_CONTINUE

    async def handle(self, ctx: StageContext) -> StageResult:
        vehicle = ctx.primary_vehicle
        if vehicle is None:
            return self.failure("No vehicle supplied for vehicle usage")

        engine = ctx.engine
        await engine.select_if_present(USAGE_SELECTOR, vehicle.usage)
        await engine.select_if_visible(OWNERSHIP_PANEL, OWNERSHIP_SELECTOR, vehicle.ownership)

        garaged = await engine.select_if_visible(GARAGED_PANEL, GARAGED_SELECTOR, vehicle.garaged)
        if garaged is not None and garaged.value != DEFAULT_GARAGING and vehicle.garaging_address:
            await self._fill_garaging_address(ctx, vehicle)

        await engine.select_if_visible(
            LENGTH_OF_OWNERSHIP_PANEL, LENGTH_OF_OWNERSHIP_SELECTOR, vehicle.length_of_ownership
        )

        await self.advance(ctx)
        return self.success("Vehicle usage entered")

    async def _fill_garaging_address(self, ctx: StageContext, vehicle: VehicleRecord):
        """Optional sub-dialog; a missing dialog is logged, not fatal"""
        engine = ctx.engine
        shown = await engine.wait_for_visible(GARAGING_DIALOG, ctx.timeouts.garaging_dialog_ms, required=False)
        if not shown:
            logger.warning(f"[{ctx.correlation_id}] Garaging address dialog did not appear")
            return

        address = vehicle.garaging_address
        if address.zip_code:
            await engine.set_text(GARAGING_ZIP, address.zip_code)
        if address.state:
            await engine.select_option(GARAGING_STATE, address.state)
        if address.address:
            await engine.set_text(GARAGING_ADDRESS, address.address)
        await engine.click_if_present(GARAGING_SUBMIT)


class VehicleListStage(BaseStage):
    """Summary of entered vehicles; extra vehicles are added here when supported"""

    stage = FunnelStage.VEHICLE_LIST
    continue_selector = LIST_CONTINUE

    async def handle(self, ctx: StageContext) -> StageResult:
        count = await ctx.driver.read_value(VEHICLE_COUNT)
        logger.info(f"[{ctx.correlation_id}] Vehicle list shows {count or '?'} vehicle(s)")

        extras = ctx.vehicles[1:]
        added = 0
        if extras and ctx.supports_multiple:
            for index, vehicle in enumerate(extras, start=1):
                if await self._add_vehicle(ctx, index, vehicle):
                    added += 1
        elif extras:
            logger.warning(f"[{ctx.correlation_id}] Multiple vehicles disabled; ignoring {len(extras)} extra vehicle(s)")

        await self.advance(ctx)
        return self.success(f"Vehicle list confirmed ({added} additional vehicle(s) added)", added=added)

    async def _add_vehicle(self, ctx: StageContext, index: int, vehicle: VehicleRecord) -> bool:
        engine = ctx.engine
        button = await self._find_add_button(ctx)
        if not button:
            logger.warning(f"[{ctx.correlation_id}] No add-vehicle control; form may not support multiple vehicles")
            return False

        await ctx.capture(f"before_add_vehicle_{index + 1}")
        await engine.robust_click(button)

        for field, value in (("Year", vehicle.year), ("Make", vehicle.make), ("Model", vehicle.model)):
            selector = await engine.first_existing(indexed_vehicle_selectors(field, index))
            if selector is None:
                logger.warning(f"[{ctx.correlation_id}] No {field.lower()} field for vehicle {index + 1}")
                return False
            if field != "Year":
                await engine.wait_for_ready(
                    lambda s=selector: engine.dropdown_populated(s),
                    ctx.timeouts.dropdown_ms,
                    f"vehicle {index + 1} {field.lower()} options"
                )
            await engine.select_option(selector, value)

        logger.info(f"[{ctx.correlation_id}] Added vehicle {index + 1}: {vehicle.description}")
        return True

    async def _find_add_button(self, ctx: StageContext) -> Optional[str]:
        for selector in ctx.config.selectors.add_vehicle:
            if await ctx.engine.is_visible(selector):
                return selector
        return None
