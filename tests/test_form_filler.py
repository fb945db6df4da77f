from __future__ import annotations

from fakes import FakeElement, FakePage

from nfscan_automation.models import InvoiceRecord
from nfscan_automation.portal.form import FormFiller, build_field_mappings
from nfscan_automation.portal.selectors import PortalSelectors


def _full_page() -> FakePage:
    page = FakePage()
    page.add('input[name*="valor"]')
    page.add('input[name*="numero"]')
    page.add('input[type="date"]', FakeElement(type_="date"))
    page.add('input[name*="cnpj"]')
    page.add('input[name*="razao"]')
    page.add('input[name*="evento"]')
    page.add('textarea[name*="comentario"]')
    return page


def _record(**overrides: str) -> InvoiceRecord:
    data = {
        "numeroNF": "xyz",
        "dataEmissao": "06/08/2025",
        "valor": "48.46",
        "cnpj": "00.000.000/0001-00",
        "razaoSocial": "Uber",
        "comentario": "corrida aeroporto",
    }
    data.update(overrides)
    return InvoiceRecord.model_validate(data)


def test_fills_every_field_through_first_candidate() -> None:
    page = _full_page()
    assert FormFiller().fill(page, _record()) is True

    assert page.by_css['input[name*="valor"]'].value == "48.46"
    assert page.by_css['input[name*="numero"]'].value == "xyz"
    assert page.by_css['input[name*="cnpj"]'].value == "00.000.000/0001-00"
    assert page.by_css['input[name*="razao"]'].value == "Uber"
    assert page.by_css['input[name*="evento"]'].value == "Despesa de viagem"
    assert page.by_css['textarea[name*="comentario"]'].value == "corrida aeroporto"
    # native date inputs only take ISO dates
    assert page.by_css['input[type="date"]'].value == "2025-08-06"


def test_field_is_cleared_before_value_is_written() -> None:
    page = _full_page()
    valor = page.by_css['input[name*="valor"]']
    valor.value = "999"

    FormFiller().fill(page, _record())

    assert valor.calls == [("fill", ""), ("fill", "48.46")]


def test_first_matching_candidate_wins_and_later_ones_are_ignored() -> None:
    page = FakePage()
    primary = page.add('input[name*="amount"]')
    later = page.add("input.currency")

    FormFiller().fill(page, _record())

    assert primary.value == "48.46"
    assert later.calls == []


def test_empty_value_leaves_input_untouched() -> None:
    page = _full_page()
    cnpj = page.by_css['input[name*="cnpj"]']
    cnpj.value = "keep-me"

    assert FormFiller().fill(page, _record(cnpj="")) is True

    assert cnpj.value == "keep-me"
    assert cnpj.calls == []


def test_missing_field_does_not_fail_the_form() -> None:
    page = _full_page()
    del page.by_css['input[name*="razao"]']

    assert FormFiller().fill(page, _record()) is True

    assert page.by_css['input[name*="valor"]'].value == "48.46"
    assert page.by_css['input[name*="cnpj"]'].value == "00.000.000/0001-00"


def test_invalid_date_for_native_date_input_is_skipped() -> None:
    page = _full_page()
    assert FormFiller().fill(page, _record(dataEmissao="not a date")) is True
    assert page.by_css['input[type="date"]'].calls == []


def test_overflowing_date_for_native_date_input_is_skipped() -> None:
    page = _full_page()
    assert FormFiller().fill(page, _record(dataEmissao="99999999999999999999")) is True
    assert page.by_css['input[type="date"]'].calls == []
    assert page.by_css['input[name*="valor"]'].value == "48.46"


def test_category_native_select_by_visible_label() -> None:
    page = _full_page()
    select = page.add(
        'select[name*="categoria"]',
        FakeElement(type_="select-one", options=["Escolha um", "Serviço de táxi / transferência"]),
    )

    assert FormFiller().fill(page, _record()) is True
    assert select.value == "Serviço de táxi / transferência"


def test_category_select_without_matching_label_is_non_fatal() -> None:
    page = _full_page()
    select = page.add('select[name*="categoria"]', FakeElement(type_="select-one", options=["Outros"]))

    assert FormFiller().fill(page, _record()) is True
    assert select.value == ""


def test_category_custom_dropdown_matches_case_insensitively() -> None:
    page = _full_page()
    dropdown = page.add('[class*="dropdown"][class*="categoria"]')
    option = FakeElement()
    page.options["SERVIÇO DE TÁXI / TRANSFERÊNCIA"] = option
    page.options["Hospedagem"] = FakeElement()

    assert FormFiller(dropdown_open_delay_ms=10).fill(page, _record(categoria="serviço de táxi / transferência")) is True

    assert dropdown.clicks == 1
    assert option.clicks == 1
    assert page.waited_ms == 10


def test_category_dropdown_falls_back_to_text_match() -> None:
    page = _full_page()
    page.add('[class*="category"]')
    item = FakeElement()
    page.by_text["Serviço de táxi / transferência"] = item

    assert FormFiller().fill(page, _record()) is True
    assert item.clicks == 1


def test_browser_error_while_typing_returns_false() -> None:
    from playwright.sync_api import Error as PlaywrightError

    class Broken(FakeElement):
        def fill(self, value: str) -> None:
            raise PlaywrightError("element detached")

    page = _full_page()
    page.add('input[name*="valor"]', Broken())

    assert FormFiller().fill(page, _record()) is False


def test_build_field_mappings_carries_record_values_in_form_order() -> None:
    mappings = build_field_mappings(_record(), PortalSelectors())
    assert [m.field for m in mappings] == [
        "valor",
        "numeroNota",
        "dataEmissao",
        "cnpj",
        "razaoSocial",
        "evento",
        "comentario",
    ]
    by_field = {m.field: m.value for m in mappings}
    assert by_field["numeroNota"] == "xyz"
    assert by_field["razaoSocial"] == "Uber"


def test_field_selector_overrides_replace_candidates() -> None:
    selectors = PortalSelectors().with_field_overrides({"valor": ['input[name="vlTotal"]'], "unknown": ["x"]})
    page = FakePage()
    total = page.add('input[name="vlTotal"]')
    page.add('input[name*="valor"]')

    FormFiller(selectors).fill(page, _record())

    assert total.value == "48.46"
    assert page.by_css['input[name*="valor"]'].calls == []
