from __future__ import annotations

from typing import Iterator

import pytest

from nfscan_automation.config import PortalSettings
from nfscan_automation.models import InvoiceRecord
from nfscan_automation.portal.form import FormFiller
from nfscan_automation.portal.session import PortalSession, launch_session


pytestmark = pytest.mark.browser

CATEGORY = "Serviço de táxi / transferência"

FIRST_CANDIDATE_FORM = """
<form>
  <input name="valor">
  <input name="numero">
  <input type="date" name="emissao">
  <input name="cnpj">
  <input name="razao">
  <input name="evento">
  <textarea name="comentario"></textarea>
</form>
"""

FALLBACK_FORM = """
<form>
  <input name="amount">
  <input name="numeroNota">
  <input name="dataEmissao">
  <input name="cnpjEmitente" value="stale">
  <input name="evento" value="keep">
  <textarea name="comentario"></textarea>
  <select name="categoria">
    <option>Escolha um</option>
    <option>Hospedagem</option>
    <option>Serviço de táxi / transferência</option>
  </select>
</form>
"""

DROPDOWN_FORM = """
<div class="dropdown categoria" onclick="document.getElementById('opts').hidden = false">
  <span id="cat-label">Escolha um</span>
</div>
<ul id="opts" hidden>
  <li role="option" onclick="pick(this)">Hospedagem</li>
  <li role="option" onclick="pick(this)">Serviço de táxi / transferência</li>
</ul>
<script>
  function pick(li) {
    document.getElementById('cat-label').textContent = li.textContent;
    document.getElementById('opts').hidden = true;
  }
</script>
"""


@pytest.fixture(scope="module")
def session() -> Iterator[PortalSession]:
    try:
        s = launch_session(PortalSettings(default_timeout_ms=5_000), headless=True)
    except Exception as e:
        pytest.skip(f"Chromium is not available: {e}")
    try:
        yield s
    finally:
        s.close()


def test_first_candidates_receive_exact_values(session: PortalSession) -> None:
    page = session.page
    page.set_content(FIRST_CANDIDATE_FORM)
    record = InvoiceRecord(
        numero_nf="xyz",
        data_emissao="2025-08-06",
        valor="48.46",
        cnpj="00.000.000/0001-00",
        razao_social="Uber",
        evento="Despesa de viagem",
        comentario="aeroporto",
    )

    assert FormFiller().fill(page, record) is True

    assert page.input_value('[name="valor"]') == "48.46"
    assert page.input_value('[name="numero"]') == "xyz"
    assert page.input_value('[name="emissao"]') == "2025-08-06"
    assert page.input_value('[name="cnpj"]') == "00.000.000/0001-00"
    assert page.input_value('[name="razao"]') == "Uber"
    assert page.input_value('[name="evento"]') == "Despesa de viagem"
    assert page.input_value('[name="comentario"]') == "aeroporto"


def test_br_date_goes_into_native_date_input_as_iso(session: PortalSession) -> None:
    page = session.page
    page.set_content(FIRST_CANDIDATE_FORM)

    FormFiller().fill(page, InvoiceRecord(data_emissao="06/08/2025"))

    assert page.input_value('[name="emissao"]') == "2025-08-06"


def test_fallback_candidates_empty_values_and_missing_fields(session: PortalSession) -> None:
    page = session.page
    page.set_content(FALLBACK_FORM)
    record = InvoiceRecord(
        numero_nf="xyz",
        data_emissao="06/08/2025",
        valor="48.46",
        cnpj="00.000.000/0001-00",
        razao_social="Uber",  # no razao input on this form
        evento="",
        categoria=CATEGORY,
    )

    assert FormFiller().fill(page, record) is True

    assert page.input_value('[name="amount"]') == "48.46"
    assert page.input_value('[name="numeroNota"]') == "xyz"
    assert page.input_value('[name="dataEmissao"]') == "06/08/2025"
    assert page.input_value('[name="cnpjEmitente"]') == "00.000.000/0001-00"
    assert page.input_value('[name="evento"]') == "keep"
    assert page.input_value('[name="comentario"]') == ""
    assert page.eval_on_selector(
        'select[name="categoria"]', "el => el.options[el.selectedIndex].text"
    ) == CATEGORY


def test_custom_dropdown_category_matches_case_insensitively(session: PortalSession) -> None:
    page = session.page
    page.set_content(DROPDOWN_FORM)

    assert FormFiller(dropdown_open_delay_ms=100).fill(page, InvoiceRecord(categoria=CATEGORY.upper())) is True

    assert page.inner_text("#cat-label") == CATEGORY
