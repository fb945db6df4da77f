from __future__ import annotations

import logging
import re
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Sequence, Union

from playwright.sync_api import Page

from ..config import PortalSettings
from ..models import InvoiceRecord, PortalCredentials, SessionOutcome
from .errors import (
    FormFillError,
    MfaApprovalTimeoutError,
    PlaywrightError,
    PortalStepError,
    SelectorNotFoundError,
    StepTimeoutError,
    as_step_error,
)
from .form import FormFiller
from .selectors import LocatorSpec, PortalSelectors, first_present
from .session import PortalSession, launch_session, open_session


logger = logging.getLogger(__name__)

SessionFactory = Callable[..., PortalSession]


class NFScanPortalClient:
    """
    NFScan portal automation (`https://nfscan.bosch.tech`, behind Microsoft SSO).

    One client drives one or more independent runs; each run owns its own PortalSession.
    """

    def __init__(
        self,
        *,
        settings: PortalSettings,
        creds: PortalCredentials,
        selectors: Optional[PortalSelectors] = None,
        form_filler: Optional[FormFiller] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")
        self.creds = creds
        self.selectors = (selectors or PortalSelectors()).with_field_overrides(settings.field_selectors)
        self.form_filler = form_filler or FormFiller(self.selectors)
        self._session_factory = session_factory or launch_session

        self._step_counter: int = 0

    # -- session lifecycle -------------------------------------------------

    def _start_run(self) -> None:
        self._step_counter = 0
        Path(self.settings.debug_dir).mkdir(parents=True, exist_ok=True)

    def initialize(self, headless: Optional[bool] = None) -> PortalSession:
        self._start_run()
        return self._session_factory(self.settings, headless=headless)

    def teardown(self, session: Optional[PortalSession]) -> None:
        if session is None:
            return
        session.close()

    @contextmanager
    def session(self, headless: Optional[bool] = None) -> Iterator[PortalSession]:
        self._start_run()
        with open_session(self.settings, headless=headless, factory=self._session_factory) as session:
            yield session

    # -- public operations ---------------------------------------------------

    def login(self, session: PortalSession, creds: Optional[PortalCredentials] = None) -> bool:
        page = session.page
        try:
            self._login(page, creds or self.creds)
        except (PortalStepError, PlaywrightError) as e:
            self._record_failure(session, e, name_prefix="login_failure", what="Login")
            return False
        return True

    def upload_and_fill(
        self,
        session: PortalSession,
        document_path: Union[str, Path],
        record: InvoiceRecord,
    ) -> bool:
        path = Path(document_path)
        if not path.is_file():
            raise FileNotFoundError(f"Document not found: {path}")

        page = session.page
        try:
            self._upload(page, path)
            self._step(page, name="form_ready")
            if not self.form_filler.fill(page, record):
                raise FormFillError("The NF form could not be filled (browser error while typing).")
            self._step(page, name="form_filled")
            self._save_document(page)
        except (PortalStepError, PlaywrightError) as e:
            self._record_failure(session, e, name_prefix="upload_failure", what="Upload")
            return False
        return True

    def run_full_workflow(
        self,
        document_path: Union[str, Path],
        record: InvoiceRecord,
        *,
        headless: Optional[bool] = None,
    ) -> SessionOutcome:
        """
        initialize -> login -> upload_and_fill -> teardown.

        Step failures become a failed SessionOutcome; any other exception propagates after the session is released.
        """
        t0 = time.time()
        with self.session(headless) as session:
            if not self.login(session):
                return self._failed_outcome(session, "SSO login failed")
            if not self.upload_and_fill(session, document_path, record):
                return self._failed_outcome(session, "NF processing failed")

        logger.info("NF %s processed (seconds=%.2f)", record.numero_nf or "?", time.time() - t0)
        return SessionOutcome(success=True, message="NF processada e salva com sucesso!", data=record)

    def test_auth(self, *, headless: Optional[bool] = None) -> bool:
        with self.session(headless) as session:
            return self.login(session)

    # -- login ---------------------------------------------------------------

    def _login(self, page: Page, creds: PortalCredentials) -> None:
        sel = self.selectors

        logger.info("Opening NFScan document list...")
        page.goto(f"{self.base_url}{self.settings.document_list_path}", wait_until="domcontentloaded")
        self._step(page, name="after_goto")

        entry = self._wait_for_any(page, sel.sso_entry, what="BOSCH ID login button")
        entry.click()
        self._step(page, name="sso_entry_clicked")

        email = self._wait_for_any(page, sel.email_input, what="SSO email field")
        email.fill(creds.identity)
        self._wait_for_any(page, sel.email_next, what="SSO Next button").click()
        self._step(page, name="email_submitted")

        pwd = self._wait_for_any(page, sel.password_input, what="SSO password field")
        pwd.fill(creds.secret)
        self._wait_for_any(page, sel.password_submit, what="SSO Sign in button").click()
        self._step(page, name="password_submitted")

        self._await_second_factor(page)

        kmsi = first_present(page, sel.stay_signed_in_prompt)
        if kmsi is not None:
            checkbox = first_present(page, sel.stay_signed_in_checkbox)
            if checkbox is not None:
                checkbox.check()
            accept = first_present(page, sel.stay_signed_in_accept)
            if accept is not None:
                accept.click()
            self._step(page, name="stay_signed_in_accepted")

        logger.info("Finishing login...")
        self._wait_for_any(
            page,
            sel.home_ready,
            timeout_ms=self.settings.default_timeout_ms,
            what="NFScan home ('Escanear')",
        )
        self._dismiss_geolocation_prompt(page)
        self._step(page, name="login_complete")
        logger.info("Login complete.")

    def _await_second_factor(self, page: Page) -> None:
        """
        Bounded wait for the out-of-band MFA approval (Microsoft Authenticator push).

        Nothing signals completion except the SSO moving on to "Stay signed in?" or back to the portal.
        """
        sel = self.selectors
        timeout_ms = self.settings.mfa_timeout_ms
        logger.info(
            "Waiting up to %.0fs for second-factor approval; approve the sign-in on your mobile device.",
            timeout_ms / 1000,
        )

        announced = False
        deadline = time.monotonic() + timeout_ms / 1000
        after_mfa: Sequence[LocatorSpec] = sel.stay_signed_in_prompt + sel.home_ready
        while True:
            if first_present(page, after_mfa) is not None:
                self._step(page, name="mfa_passed")
                return
            if not announced and first_present(page, sel.mfa_prompt) is not None:
                announced = True
                self._step(page, name="mfa_prompt_visible")
                logger.info("MFA approval request is showing; waiting for approval...")
            if time.monotonic() >= deadline:
                break
            page.wait_for_timeout(self.settings.poll_interval_ms)

        if first_present(page, sel.mfa_prompt) is not None:
            raise MfaApprovalTimeoutError(
                f"Timed out after {timeout_ms / 1000:.0f}s awaiting second-factor approval on the user's device."
            )
        if self.settings.mfa_missing_prompt_policy == "fail":
            raise MfaApprovalTimeoutError(
                f"No MFA prompt or post-login page after {timeout_ms / 1000:.0f}s (policy=fail)."
            )
        logger.warning(
            "No MFA or 'stay signed in' prompt after %.0fs; assuming MFA was approved or not required.",
            timeout_ms / 1000,
        )

    def _dismiss_geolocation_prompt(self, page: Page) -> None:
        allow = first_present(page, self.selectors.geolocation_allow)
        if allow is None:
            return
        logger.info("Allowing geolocation access...")
        try:
            allow.click()
        except PlaywrightError:
            logger.debug("Geolocation prompt vanished before it could be clicked.", exc_info=True)

    # -- upload + save -------------------------------------------------------

    def _upload(self, page: Page, path: Path) -> None:
        sel = self.selectors

        logger.info("Starting scan of %s", path.name)
        self._wait_for_any(page, sel.home_ready, what="'Escanear' button").click()

        file_input = self._wait_for_any(page, sel.file_input, what="file input")
        file_input.set_input_files(str(path))
        self._step(page, name="file_attached")

        self._wait_for_any(page, sel.upload_save, what="upload 'Salvar' button").click()
        logger.info("Waiting for document analysis...")
        self._wait_for_analysis(page)

        page.wait_for_timeout(self.settings.form_settle_ms)
        every_field = tuple(c for f in sel.fields for c in f.candidates)
        if self._wait_for_any(page, every_field, what="NF form", required=False) is None:
            logger.warning("No known NF form field appeared after analysis; filling anyway.")

    def _wait_for_analysis(self, page: Page) -> None:
        sel = self.selectors
        # The indicator may render a moment after the click; don't mistake "not yet shown" for "done".
        self._wait_for_any(
            page,
            sel.analysis_in_progress,
            timeout_ms=self.settings.analysis_appear_ms,
            what="analysis indicator",
            required=False,
        )

        timeout_ms = self.settings.analysis_timeout_ms
        deadline = time.monotonic() + timeout_ms / 1000
        while first_present(page, sel.analysis_in_progress) is not None:
            if time.monotonic() >= deadline:
                raise StepTimeoutError(f"Document analysis still running after {timeout_ms / 1000:.0f}s.")
            page.wait_for_timeout(self.settings.poll_interval_ms)

    def _save_document(self, page: Page) -> None:
        sel = self.selectors
        logger.info("Saving document...")
        page.wait_for_timeout(self.settings.save_settle_ms)
        self._wait_for_any(page, sel.final_save, what="enabled 'Salvar' button").click()

        # The home control sits behind the form overlay, so it only confirms the save once the form is gone.
        timeout_ms = self.settings.save_timeout_ms
        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            if first_present(page, sel.save_confirmation) is not None:
                break
            if first_present(page, sel.upload_save) is None and first_present(page, sel.home_ready) is not None:
                break
            if time.monotonic() >= deadline:
                raise StepTimeoutError(f"Save not confirmed after {timeout_ms / 1000:.0f}s; the NF form is still open.")
            page.wait_for_timeout(self.settings.poll_interval_ms)

        self._step(page, name="document_saved")
        logger.info("Document saved.")

    # -- helpers -------------------------------------------------------------

    def _wait_for_any(
        self,
        page: Page,
        candidates: Sequence[LocatorSpec],
        *,
        what: str,
        timeout_ms: Optional[int] = None,
        required: bool = True,
    ):
        """
        Poll until one of `candidates` is present; return it. Raises SelectorNotFoundError on timeout
        (or returns None when `required=False`).
        """
        timeout_ms = self.settings.step_timeout_ms if timeout_ms is None else timeout_ms
        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            found = first_present(page, candidates)
            if found is not None:
                return found
            if time.monotonic() >= deadline:
                break
            page.wait_for_timeout(self.settings.poll_interval_ms)

        if required:
            raise SelectorNotFoundError(f"Timed out after {timeout_ms / 1000:.0f}s waiting for {what}.")
        return None

    def _failed_outcome(self, session: PortalSession, fallback: str) -> SessionOutcome:
        failure = session.failure
        return SessionOutcome(
            success=False,
            error=f"{fallback}: {failure}" if failure else fallback,
            failure_kind=failure.kind if failure else None,
        )

    def _record_failure(self, session: PortalSession, exc: BaseException, *, name_prefix: str, what: str) -> None:
        failure = as_step_error(exc)
        session.failure = failure
        logger.error("%s failed (%s): %s", what, failure.kind, failure)
        stamp = time.strftime("%Y%m%d_%H%M%S")
        self._save_debug(session.page, name_prefix=f"{name_prefix}_{stamp}")

    def _save_debug(self, page: Page, *, name_prefix: str) -> None:
        try:
            out_dir = Path(self.settings.debug_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            page.screenshot(path=str(out_dir / f"{name_prefix}.png"), full_page=True)
            (out_dir / f"{name_prefix}.html").write_text(page.content(), encoding="utf-8")
            try:
                (out_dir / f"{name_prefix}.txt").write_text(page.inner_text("body"), encoding="utf-8")
            except Exception:
                pass
            logger.info("Saved diagnostic screenshot: %s", out_dir / f"{name_prefix}.png")
        except Exception:
            logger.debug("Failed to save debug artifacts.", exc_info=True)

    def _step(self, page: Page, *, name: str) -> None:
        """
        Log step-by-step progress; with `step_debug` also save a screenshot per step.
        """
        self._step_counter += 1
        try:
            logger.debug("Step %02d %s (url=%s)", self._step_counter, name, getattr(page, "url", ""))
        except Exception:
            pass

        if not self.settings.step_debug:
            return

        safe = re.sub(r"[^a-zA-Z0-9_-]+", "_", name).strip("_")[:60] or "step"
        try:
            out_dir = Path(self.settings.debug_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            page.screenshot(path=str(out_dir / f"step_{self._step_counter:02d}_{safe}.png"), full_page=True)
        except Exception:
            logger.debug("Failed to save step screenshot (name=%s).", name, exc_info=True)
