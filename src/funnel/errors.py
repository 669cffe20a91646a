"""Error kinds raised by the funnel engine"""

from typing import List, Optional, Sequence, Tuple


class FunnelError(Exception):
    """Base class for every funnel failure"""

    @property
    def kind(self) -> str:
        return type(self).__name__


class ValidationError(FunnelError):
    """Caller input rejected before any browser work"""

    step = "validation_failed"

    def __init__(self, errors: Sequence[str], message: str = "Validation failed", step: Optional[str] = None):
        self.errors = list(errors)
        if step:
            self.step = step
        super().__init__(f"{message}: {'; '.join(self.errors)}")


class SuspiciousDataError(ValidationError):
    """Input tripped a fraud heuristic"""

    step = "fraud_detection_failed"

    def __init__(self, indicators: Sequence[str]):
        super().__init__(indicators, message="Suspicious data detected")


class StageDetectionTimeout(FunnelError):
    def __init__(self, candidates: Sequence[str], timeout_ms: int):
        self.candidates = list(candidates)
        self.timeout_ms = timeout_ms
        super().__init__(
            f"No funnel stage detected within {timeout_ms}ms (expected one of: {', '.join(self.candidates)})"
        )


class UnknownPageLayout(FunnelError):
    """None of the expected markers exist; the site layout probably changed"""

    def __init__(self, description: str, selectors: Sequence[str]):
        self.selectors = list(selectors)
        super().__init__(f"Unknown page layout on {description}: none of {', '.join(self.selectors)} found")


class ElementNotFound(FunnelError):
    def __init__(self, selector: str):
        self.selector = selector
        super().__init__(f"Element not found: {selector}")


class ElementNotInteractable(FunnelError):
    def __init__(self, selector: str, reason: str):
        self.selector = selector
        self.reason = reason
        super().__init__(f"Element {selector} is not interactable: {reason}")


class AmbiguousOptionError(FunnelError):
    """No dropdown option matched exactly or by substring"""

    def __init__(self, selector: str, desired: str, options: Sequence[str]):
        self.selector = selector
        self.desired = desired
        self.options = list(options)
        super().__init__(
            f"No option matching '{desired}' in {selector}. Available options: {', '.join(self.options)}"
        )


class ReadinessTimeout(FunnelError):
    def __init__(self, description: str, timeout_ms: int):
        self.description = description
        self.timeout_ms = timeout_ms
        super().__init__(f"Timed out after {timeout_ms}ms waiting for {description}")


class StrategiesExhausted(FunnelError):
    """Every strategy in a fallback ladder failed"""

    def __init__(self, description: str, failures: List[Tuple[str, str]]):
        self.description = description
        self.failures = list(failures)
        detail = "; ".join(f"{name}: {reason}" for name, reason in self.failures)
        super().__init__(f"All strategies failed for {description} ({detail})")


class AllClickStrategiesFailed(StrategiesExhausted):
    def __init__(self, selector: str, failures: List[Tuple[str, str]]):
        self.selector = selector
        super().__init__(f"click on {selector}", failures)


def error_kind(error: Optional[BaseException]) -> Optional[str]:
    """Name used in results for an exception"""
    if error is None:
        return None
    if isinstance(error, FunnelError):
        return error.kind
    return type(error).__name__
