from __future__ import annotations

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError


class PortalStepError(RuntimeError):
    """
    A recoverable failure of one automation step (login, upload, save).

    Caught at the operation boundary: the run ends with a failed outcome, no retry.
    """

    kind = "step"


class SelectorNotFoundError(PortalStepError):
    """None of the candidate locators for a control appeared within its timeout (portal markup changed?)."""

    kind = "selector_not_found"


class MfaApprovalTimeoutError(PortalStepError):
    """Timed out awaiting the out-of-band second-factor approval on the user's device."""

    kind = "mfa_timeout"


class StepTimeoutError(PortalStepError):
    kind = "timeout"


class FormFillError(PortalStepError):
    kind = "form_fill"


class BrowserActionError(PortalStepError):
    """A Playwright navigation/click/type call failed."""

    kind = "browser"


def as_step_error(exc: BaseException) -> PortalStepError:
    if isinstance(exc, PortalStepError):
        return exc
    if isinstance(exc, PlaywrightTimeoutError):
        return StepTimeoutError(str(exc))
    return BrowserActionError(str(exc))


__all__ = [
    "BrowserActionError",
    "FormFillError",
    "MfaApprovalTimeoutError",
    "PlaywrightError",
    "PlaywrightTimeoutError",
    "PortalStepError",
    "SelectorNotFoundError",
    "StepTimeoutError",
    "as_step_error",
]
