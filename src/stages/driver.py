"""Driver stages: primary driver demographics/license and the driver list"""

from typing import List, Optional
from loguru import logger

from src.funnel.models import DriverRecord, FunnelStage, StageResult
from src.stages.base import BaseStage, StageContext
from src.stages.lookups import state_option


# =============================================================================
# DRIVER SELECTORS
# =============================================================================

DOB_SELECTOR = "#drvDOB"
GENDER_SELECTOR = "#drvGender"
MARITAL_SELECTOR = "#drvMarital"
LICENSE_ORIGIN_SELECTOR = "#licOrigin"
LICENSE_STATE_SELECTOR = "#licState"
LICENSE_STATUS_SELECTOR = "#licStatus"
LICENSE_NUMBER_SELECTOR = "#licNumber"
SR22_SELECTOR = "#licSR22"
VIOLATIONS_SELECTOR = "#licViolations"
INFO_CONTINUE = "#pg4btn"

DRIVER_TITLES = ".inputPanel .panelTitle"
LIST_CONTINUE = "#pg5btn"


def yes_no(flag: Optional[bool]) -> Optional[str]:
    if flag is None:
        return None
    return "Yes" if flag else "No"


def indexed_driver_selectors(field: str, index: int) -> List[str]:
    """Candidate ids for the n-th driver's field, e.g. #firstName_1, #driverFirstName1"""
    lower = field[0].lower() + field[1:]
    return [f"#{lower}_{index}", f"#{field}_{index}", f"#driver{field}{index}"]


class DriverInfoStage(BaseStage):
    """Primary driver demographics and license.

    Name fields are never touched here: the primary driver's identity comes
    from the Personal Info page.
    """

    stage = FunnelStage.DRIVER_INFO
    continue_selector = INFO_CONTINUE

    async def handle(self, ctx: StageContext) -> StageResult:
        driver = ctx.primary_driver
        if driver is None:
            return self.failure("No driver supplied for driver info")

        engine = ctx.engine
        if driver.date_of_birth:
            method = await engine.set_date(DOB_SELECTOR, driver.date_of_birth)
            if method is None:
                logger.error(f"[{ctx.correlation_id}] Date of birth could not be set")

        await engine.select_if_present(GENDER_SELECTOR, driver.gender)
        await engine.select_if_present(MARITAL_SELECTOR, driver.marital_status)
        await engine.select_if_present(LICENSE_ORIGIN_SELECTOR, driver.license_origin)
        await engine.select_if_present(
            LICENSE_STATE_SELECTOR, state_option(driver.license_state) if driver.license_state else None
        )
        await engine.select_if_present(LICENSE_STATUS_SELECTOR, driver.license_status)
        if driver.license_number:
            await engine.set_text(LICENSE_NUMBER_SELECTOR, driver.license_number)
        await engine.select_if_present(SR22_SELECTOR, yes_no(driver.sr22))
        await engine.select_if_present(VIOLATIONS_SELECTOR, yes_no(driver.has_violations))

        await self.advance(ctx)
        return self.success("Driver information entered")


class DriverListStage(BaseStage):
    """Summary of drivers; extra drivers are added here when supported"""

    stage = FunnelStage.DRIVER_LIST
    continue_selector = LIST_CONTINUE

    async def handle(self, ctx: StageContext) -> StageResult:
        titles = await ctx.driver.texts(DRIVER_TITLES)
        logger.info(f"[{ctx.correlation_id}] Driver list shows: {titles}")

        extras = ctx.drivers[1:]
        added = 0
        if extras and ctx.supports_multiple:
            for index, driver in enumerate(extras, start=1):
                if await self._add_driver(ctx, index, driver):
                    added += 1
        elif extras:
            logger.warning(f"[{ctx.correlation_id}] Multiple drivers disabled; ignoring {len(extras)} extra driver(s)")

        await self.advance(ctx)
        return self.success(f"Driver list confirmed ({added} additional driver(s) added)", added=added)

    async def _add_driver(self, ctx: StageContext, index: int, driver: DriverRecord) -> bool:
        engine = ctx.engine
        button = None
        for selector in ctx.config.selectors.add_driver:
            if await engine.is_visible(selector):
                button = selector
                break
        if not button:
            logger.warning(f"[{ctx.correlation_id}] No add-driver control; form may not support multiple drivers")
            return False

        await ctx.capture(f"before_add_driver_{index + 1}")
        await engine.robust_click(button)

        for field, value in (
            ("FirstName", driver.first_name),
            ("LastName", driver.last_name),
            ("LicenseNumber", driver.license_number),
        ):
            if not value:
                continue
            selector = await engine.first_existing(indexed_driver_selectors(field, index))
            if selector:
                await engine.set_text(selector, value)

        if driver.date_of_birth:
            selector = await engine.first_existing(
                indexed_driver_selectors("DateOfBirth", index) + [f"#dob_{index}", f"#driverDOB{index}"]
            )
            if selector:
                await engine.set_date(selector, driver.date_of_birth)

        for field, value in (
            ("Relationship", driver.relationship),
            ("Gender", driver.gender),
            ("MaritalStatus", driver.marital_status),
            ("LicenseState", state_option(driver.license_state) if driver.license_state else None),
            ("LicenseStatus", driver.license_status),
        ):
            if not value:
                continue
            selector = await engine.first_existing(indexed_driver_selectors(field, index))
            if selector is None:
                logger.debug(f"[{ctx.correlation_id}] No {field} field for driver {index + 1}")
                continue
            await engine.select_if_present(selector, value)

        logger.info(f"[{ctx.correlation_id}] Added driver {index + 1}")
        return True
