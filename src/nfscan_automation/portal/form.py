from __future__ import annotations

import logging
from typing import Optional

from ..models import InvoiceRecord
from ..util.dates import to_iso_date
from .errors import PlaywrightError, PlaywrightTimeoutError
from .selectors import FieldMapping, PortalSelectors, first_present


logger = logging.getLogger(__name__)


def build_field_mappings(record: InvoiceRecord, selectors: PortalSelectors) -> list[FieldMapping]:
    return [
        FieldMapping(
            field=f.field,
            candidates=f.candidates,
            value=str(getattr(record, f.attribute, "") or ""),
        )
        for f in selectors.fields
    ]


class FormFiller:
    """
    Populate the NF metadata form that the portal renders after document analysis.

    Each field has an ordered list of candidate locators; the first one present on the page wins.
    A field with no matching element is logged and skipped, it never fails the whole form.
    """

    def __init__(
        self,
        selectors: Optional[PortalSelectors] = None,
        *,
        dropdown_open_delay_ms: int = 500,
        option_timeout_ms: int = 5_000,
    ) -> None:
        self.selectors = selectors or PortalSelectors()
        self.dropdown_open_delay_ms = dropdown_open_delay_ms
        self.option_timeout_ms = option_timeout_ms

    def fill(self, page, record: InvoiceRecord) -> bool:
        try:
            for mapping in build_field_mappings(record, self.selectors):
                if not mapping.value:
                    continue
                self._fill_field(page, mapping)

            if record.categoria:
                self._select_category(page, record.categoria)
        except PlaywrightError as e:
            logger.error("Form fill aborted by a browser error: %s", e)
            return False

        logger.info("Form filled.")
        return True

    def _fill_field(self, page, mapping: FieldMapping) -> bool:
        target = first_present(page, mapping.candidates)
        if target is None:
            logger.warning(
                "Form field not found: %s (tried %s)",
                mapping.field,
                ", ".join(c.describe() for c in mapping.candidates),
            )
            return False

        value = mapping.value
        if (target.get_attribute("type") or "").lower() == "date":
            try:
                value = to_iso_date(value)
            except ValueError:
                logger.warning("Skipping %s: %r is not a dd/mm/yyyy date.", mapping.field, value)
                return False

        logger.info("Filling %s", mapping.field)
        target.fill("")
        target.fill(value)
        return True

    def _select_category(self, page, category: str) -> None:
        logger.info("Selecting category: %s", category)

        native = first_present(page, self.selectors.category_select)
        if native is not None:
            try:
                native.select_option(label=category, timeout=self.option_timeout_ms)
            except PlaywrightTimeoutError:
                logger.warning("Category %r is not an option of the category select; leaving it unchanged.", category)
            return

        dropdown = first_present(page, self.selectors.category_dropdown)
        if dropdown is None:
            logger.warning("Category control not found; skipping category.")
            return

        dropdown.click()
        page.wait_for_timeout(self.dropdown_open_delay_ms)

        option = first_present(page, self.selectors.category_options(category))
        if option is None:
            logger.warning("Category option %r not found in dropdown; skipping category.", category)
            return
        option.click()
