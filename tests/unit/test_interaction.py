"""Unit tests for the interaction engine and its combinators"""

import asyncio
import pytest
from pathlib import Path
import sys

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from src.browser.driver import SelectOption
from src.browser.interaction import (
    choose_option,
    first_success,
    race_first,
    to_locale_date,
    values_match,
)
from src.funnel.errors import (
    AllClickStrategiesFailed,
    AmbiguousOptionError,
    ElementNotFound,
    ElementNotInteractable,
    ReadinessTimeout,
    StrategiesExhausted,
)
from funnel_fakes import FakeElement, button, select, text_input


def options(*pairs):
    return [SelectOption(value=v, text=t) for v, t in pairs]


class TestChooseOption:
    """Test the two-tier option matching policy"""

    def test_exact_text_beats_substring(self):
        """Test an exact match wins even when a substring match comes first"""
        opts = options(("ACC_CPE", "Accord Coupe"), ("ACC", "Accord"))
        assert choose_option(opts, "accord").value == "ACC"

    def test_exact_value_match(self):
        """Test matching on the option value"""
        opts = options(("", "Select"), ("NewYork", "New York"))
        assert choose_option(opts, "newyork").text == "New York"

    def test_substring_either_direction(self):
        """Test option text contained in the target and vice versa"""
        opts = options(("", "Select Model"), ("SILV", "Silverado 1500"))
        assert choose_option(opts, "Silverado").value == "SILV"
        assert choose_option(opts, "Silverado 1500 LT").value == "SILV"

    def test_blank_options_skip_substring(self):
        """Test placeholder options never win a substring match"""
        opts = options(("", "Select"), ("F", "Female"))
        assert choose_option(opts, "Select one") is None

    def test_no_match_returns_none(self):
        """Test an unmatched value yields None"""
        opts = options(("HONDA", "Honda"), ("FORD", "Ford"))
        assert choose_option(opts, "toyotaa") is None

    def test_empty_desired(self):
        """Test an empty desired value never matches"""
        assert choose_option(options(("A", "A")), "  ") is None


class TestValueHelpers:
    """Test value comparison and date formatting"""

    def test_masked_phone_matches(self):
        """Test input-mask punctuation is ignored"""
        assert values_match("3105551234", "(310) 555-1234")

    def test_different_values_do_not_match(self):
        """Test different digits do not match"""
        assert not values_match("3105551234", "3105559999")
        assert not values_match("abc", None)

    def test_to_locale_date(self):
        """Test ISO to MM/DD/YYYY conversion"""
        assert to_locale_date("1990-05-15") == "05/15/1990"


class TestFirstSuccess:
    """Test the ordered strategy combinator"""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        """Test later strategies are not run after a success"""
        calls = []

        async def fails():
            calls.append("a")
            raise RuntimeError("boom")

        async def declines():
            calls.append("b")
            return False

        async def works():
            calls.append("c")
            return "done"

        async def never():
            calls.append("d")
            return True

        name, result = await first_success(
            [("a", fails), ("b", declines), ("c", works), ("d", never)], "test"
        )

        assert (name, result) == ("c", "done")
        assert calls == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_exhausted_keeps_every_reason(self):
        """Test all failure reasons are preserved"""
        async def fails():
            raise RuntimeError("first reason")

        async def declines():
            return False

        with pytest.raises(StrategiesExhausted) as exc_info:
            await first_success([("one", fails), ("two", declines)], "thing")

        assert exc_info.value.failures == [("one", "first reason"), ("two", "verification failed")]
        assert "thing" in str(exc_info.value)


class TestRaceFirst:
    """Test racing readiness probes"""

    @pytest.mark.asyncio
    async def test_first_positive_wins_and_others_cancelled(self):
        """Test the fastest positive probe wins and slow probes are cancelled"""
        cancelled = []

        async def slow():
            try:
                await asyncio.sleep(5)
                return True
            except asyncio.CancelledError:
                cancelled.append("slow")
                raise

        async def fast():
            await asyncio.sleep(0.01)
            return True

        winner = await race_first({"slow": slow, "fast": fast}, 1000)

        assert winner == "fast"
        assert cancelled == ["slow"]

    @pytest.mark.asyncio
    async def test_negative_and_raising_probes_drop_out(self):
        """Test False and raising probes do not win"""
        async def negative():
            return False

        async def broken():
            raise RuntimeError("probe failed")

        async def positive():
            await asyncio.sleep(0.01)
            return True

        winner = await race_first({"neg": negative, "err": broken, "pos": positive}, 1000)
        assert winner == "pos"

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self):
        """Test no winner within the timeout"""
        async def never():
            await asyncio.sleep(5)
            return True

        assert await race_first({"never": never}, 20) is None

    @pytest.mark.asyncio
    async def test_simultaneous_winners_use_insertion_order(self):
        """Test ties resolve to the first registered probe"""
        async def yes():
            return True

        assert await race_first({"first": yes, "second": yes}, 100) == "first"


class TestSetText:
    """Test typing with verification"""

    @pytest.mark.asyncio
    async def test_set_text_twice_holds_value_once(self, engine, fake_driver):
        """Test setting the same field twice leaves exactly the value"""
        field = fake_driver.add("#City", text_input(value="stale"))

        assert await engine.set_text("#City", "Los Angeles")
        assert await engine.set_text("#City", "Los Angeles")

        assert field.value == "Los Angeles"

    @pytest.mark.asyncio
    async def test_masked_input_verifies(self, engine, fake_driver):
        """Test a field that reformats input still verifies"""
        def phone_mask(raw):
            digits = "".join(c for c in raw if c.isdigit())
            if len(digits) == 10:
                return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
            return digits

        fake_driver.add("#Phone", text_input(formatter=phone_mask))
        assert await engine.set_text("#Phone", "3105551234")

    @pytest.mark.asyncio
    async def test_missing_field_returns_false(self, engine):
        """Test a missing field reports False without raising"""
        assert await engine.set_text("#Nope", "x") is False

    @pytest.mark.asyncio
    async def test_field_that_drops_input(self, engine, fake_driver):
        """Test verification failure when the page discards typing"""
        fake_driver.add("#Zip", text_input(formatter=lambda raw: ""))
        assert await engine.set_text("#Zip", "90001") is False


class TestSetDate:
    """Test the date fallback ladder"""

    @pytest.mark.asyncio
    async def test_iso_assignment(self, engine, fake_driver):
        """Test ISO assignment is tried first"""
        fake_driver.add("#dob", FakeElement(tag="input", input_type="date"))
        assert await engine.set_date("#dob", "1990-05-15") == "iso"
        assert fake_driver.elements["#dob"].value == "1990-05-15"

    @pytest.mark.asyncio
    async def test_falls_back_to_locale(self, engine, fake_driver):
        """Test a widget that rejects ISO dates gets MM/DD/YYYY"""
        fake_driver.add("#dob", FakeElement(tag="input", rejects_assign=lambda v: "-" in v))
        assert await engine.set_date("#dob", "1990-05-15") == "locale"
        assert fake_driver.elements["#dob"].value == "05/15/1990"

    @pytest.mark.asyncio
    async def test_falls_back_to_typing(self, engine, fake_driver):
        """Test typed digits when both assignments leave the sentinel"""
        fake_driver.add("#dob", FakeElement(tag="input", rejects_assign=lambda v: True))
        assert await engine.set_date("#dob", "1990-05-15") == "typed"
        assert fake_driver.elements["#dob"].value == "05151990"

    @pytest.mark.asyncio
    async def test_all_steps_fail(self, engine, fake_driver):
        """Test None when nothing sticks"""
        fake_driver.add("#dob", FakeElement(
            tag="input", rejects_assign=lambda v: True, formatter=lambda raw: "1753-01-01"
        ))
        assert await engine.set_date("#dob", "1990-05-15") is None

    @pytest.mark.asyncio
    async def test_impossible_date_is_not_attempted(self, engine, fake_driver):
        """Test an unparseable date returns None and leaves the field alone"""
        fake_driver.add("#dob", FakeElement(tag="input", input_type="date", value="2000-01-01"))
        assert await engine.set_date("#dob", "1990-02-30") is None
        assert fake_driver.elements["#dob"].value == "2000-01-01"


class TestSelectOption:
    """Test dropdown selection"""

    @pytest.mark.asyncio
    async def test_selects_exact_match(self, engine, fake_driver):
        """Test the matched option value is selected"""
        fake_driver.add("#Make", select([("", "Select Make"), ("HONDA", "Honda"), ("FORD", "Ford")]))

        option = await engine.select_option("#Make", "honda")

        assert option.value == "HONDA"
        assert fake_driver.selections == [("#Make", "HONDA")]

    @pytest.mark.asyncio
    async def test_unmatched_lists_options(self, engine, fake_driver):
        """Test AmbiguousOptionError enumerates the option texts"""
        fake_driver.add("#Make", select([("", "Select Make"), ("HONDA", "Honda"), ("FORD", "Ford")]))

        with pytest.raises(AmbiguousOptionError) as exc_info:
            await engine.select_option("#Make", "toyotaa")

        assert exc_info.value.options == ["Select Make", "Honda", "Ford"]
        assert "Available options: Select Make, Honda, Ford" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_dropdown(self, engine):
        """Test ElementNotFound for a missing dropdown"""
        with pytest.raises(ElementNotFound):
            await engine.select_option("#Missing", "x")

    @pytest.mark.asyncio
    async def test_select_if_visible_skips_hidden_panel(self, engine, fake_driver):
        """Test conditional panels are ignored while hidden, even with data"""
        fake_driver.add("#Pan", FakeElement(visible=False))
        fake_driver.add("#Sel", select([("1", "Owned")]))

        assert await engine.select_if_visible("#Pan", "#Sel", "Owned") is None
        assert fake_driver.selections == []

    @pytest.mark.asyncio
    async def test_select_if_present_skips_without_data(self, engine, fake_driver):
        """Test no selection happens when no value was supplied"""
        fake_driver.add("#Sel", select([("1", "One")]))
        assert await engine.select_if_present("#Sel", None) is None
        assert await engine.select_if_present("#Other", "One") is None


class TestRobustClick:
    """Test the multi-strategy click"""

    @pytest.mark.asyncio
    async def test_succeeds_on_third_strategy(self, engine, fake_driver):
        """Test strategies 1-2 failing and 3 succeeding reports strategy 3"""
        target = fake_driver.add("#go", button(failing_clicks=["native", "script"]))

        method = await engine.robust_click("#go")

        assert method == "mouse"
        assert target.clicks == ["mouse"]

    @pytest.mark.asyncio
    async def test_form_submit_only_for_submit_controls(self, engine, fake_driver):
        """Test form submission is attempted only on submit inputs"""
        fake_driver.add("#submit", FakeElement(
            tag="input", input_type="submit", failing_clicks=["native", "script", "mouse"]
        ))
        fake_driver.add("#plain", button(failing_clicks=["native", "script", "mouse"]))

        assert await engine.robust_click("#submit") == "form_submit"

        with pytest.raises(AllClickStrategiesFailed) as exc_info:
            await engine.robust_click("#plain")
        assert [name for name, _ in exc_info.value.failures] == ["native", "script", "mouse"]

    @pytest.mark.asyncio
    async def test_scrolls_offscreen_target(self, engine, fake_driver):
        """Test an offscreen element is scrolled into view first"""
        target = fake_driver.add("#go", button(in_viewport=False))
        await engine.robust_click("#go")
        assert target.in_viewport

    @pytest.mark.asyncio
    async def test_hidden_or_disabled(self, engine, fake_driver):
        """Test hidden and disabled targets are not interactable"""
        fake_driver.add("#hidden", button(visible=False))
        fake_driver.add("#disabled", button(enabled=False))

        with pytest.raises(ElementNotInteractable):
            await engine.robust_click("#hidden")
        with pytest.raises(ElementNotInteractable):
            await engine.robust_click("#disabled")
        with pytest.raises(ElementNotFound):
            await engine.robust_click("#absent")

    @pytest.mark.asyncio
    async def test_click_if_present(self, engine, fake_driver):
        """Test optional clicks skip missing controls"""
        fake_driver.add("#go", button())
        assert await engine.click_if_present("#go")
        assert not await engine.click_if_present("#absent")


class TestCheckBox:
    """Test checkbox fallbacks"""

    @pytest.mark.asyncio
    async def test_toggle(self, engine, fake_driver):
        """Test a direct toggle checks the box"""
        box = fake_driver.add("#agree", FakeElement(tag="input", input_type="checkbox"))
        assert await engine.check_box("#agree")
        assert box.checked

    @pytest.mark.asyncio
    async def test_already_checked_is_left_alone(self, engine, fake_driver):
        """Test an already checked box is not toggled off"""
        box = fake_driver.add("#agree", FakeElement(tag="input", input_type="checkbox"))
        box.checked = True
        assert await engine.check_box("#agree")
        assert box.checked
        assert box.clicks == []

    @pytest.mark.asyncio
    async def test_scripted_fallback(self, engine, fake_driver):
        """Test scripted assignment when clicks do nothing"""
        box = fake_driver.add("#agree", FakeElement(tag="input", input_type="checkbox", failing_clicks=["script"]))
        assert await engine.check_box("#agree")
        assert box.checked


class TestReadiness:
    """Test readiness waiting"""

    @pytest.mark.asyncio
    async def test_wait_for_ready_polls_until_true(self, engine):
        """Test the predicate is polled until it holds"""
        state = {"calls": 0}

        async def ready():
            state["calls"] += 1
            return state["calls"] >= 3

        assert await engine.wait_for_ready(ready, 500, "three polls")
        assert state["calls"] == 3

    @pytest.mark.asyncio
    async def test_required_timeout_raises(self, engine):
        """Test ReadinessTimeout when a required wait expires"""
        async def never():
            return False

        with pytest.raises(ReadinessTimeout):
            await engine.wait_for_ready(never, 20, "never")
        assert await engine.wait_for_ready(never, 20, "never", required=False) is False

    @pytest.mark.asyncio
    async def test_dropdown_populated(self, engine, fake_driver):
        """Test a dropdown counts as populated past its placeholder and enabled panel"""
        fake_driver.add("#Make", select([("", "Select Make")]))
        fake_driver.add("#Panel", FakeElement(classes=["disabled"]))
        assert not await engine.dropdown_populated("#Make", "#Panel")

        fake_driver.elements["#Make"].set_options([("", "Select Make"), ("HONDA", "Honda")])
        assert not await engine.dropdown_populated("#Make", "#Panel")

        fake_driver.elements["#Panel"].classes.clear()
        assert await engine.dropdown_populated("#Make", "#Panel")

    @pytest.mark.asyncio
    async def test_wait_for_any(self, engine, fake_driver):
        """Test the first visible alternative selector is returned"""
        fake_driver.add("#container", FakeElement())
        assert await engine.wait_for_any(["#FirstName", "#container"], 100) == "#container"
        assert await engine.wait_for_any(["#nothing"], 20) is None
