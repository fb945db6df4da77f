from __future__ import annotations

import pytest
from pydantic import ValidationError

from nfscan_automation.models import (
    DEFAULT_CATEGORIA,
    DEFAULT_EVENTO,
    InvoiceRecord,
    PortalCredentials,
    SessionOutcome,
)


def test_invoice_record_accepts_api_keys_and_field_names() -> None:
    a = InvoiceRecord.model_validate({"numeroNF": "123", "razaoSocial": "Uber"})
    b = InvoiceRecord(numero_nf="123", razao_social="Uber")
    assert a == b
    assert a.categoria == DEFAULT_CATEGORIA
    assert a.evento == DEFAULT_EVENTO
    assert a.comentario == ""


def test_invoice_record_is_immutable() -> None:
    record = InvoiceRecord(numero_nf="1")
    with pytest.raises(ValidationError):
        record.numero_nf = "2"  # type: ignore[misc]


def test_from_form_values_treats_blank_as_missing() -> None:
    record = InvoiceRecord.from_form_values(
        {"numeroNF": " 42 ", "categoria": "", "evento": "   ", "valor": None, "comentario": "ok"}
    )
    assert record.numero_nf == "42"
    assert record.categoria == DEFAULT_CATEGORIA
    assert record.evento == DEFAULT_EVENTO
    assert record.valor == ""
    assert record.comentario == "ok"


def test_session_outcome_response_uses_api_keys() -> None:
    outcome = SessionOutcome(success=True, message="done", data=InvoiceRecord(numero_nf="xyz", valor="48.46"))
    body = outcome.to_response()
    assert body["success"] is True
    assert body["message"] == "done"
    assert "error" not in body
    assert body["data"]["numeroNF"] == "xyz"
    assert body["data"]["valor"] == "48.46"


def test_failed_outcome_carries_failure_kind() -> None:
    body = SessionOutcome(success=False, error="SSO login failed", failure_kind="mfa_timeout").to_response()
    assert body == {"success": False, "error": "SSO login failed", "failureKind": "mfa_timeout"}


def test_credentials_repr_hides_secret() -> None:
    creds = PortalCredentials(identity="user@example.com", secret="hunter2")
    assert "hunter2" not in repr(creds)
    assert "user@example.com" in repr(creds)
