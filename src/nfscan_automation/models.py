from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_CATEGORIA = "Serviço de táxi / transferência"
DEFAULT_EVENTO = "Despesa de viagem"


@dataclass(frozen=True)
class PortalCredentials:
    identity: str
    secret: str = field(repr=False)


class InvoiceRecord(BaseModel):
    """
    Invoice (NF) metadata typed into the NFScan form after upload.

    Accepts the camelCase keys used by the HTTP API (`numeroNF`, `razaoSocial`, ...) or the field names.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    numero_nf: str = Field(default="", alias="numeroNF")
    data_emissao: str = Field(default="", alias="dataEmissao")
    valor: str = ""
    cnpj: str = ""
    razao_social: str = Field(default="", alias="razaoSocial")
    categoria: str = DEFAULT_CATEGORIA
    evento: str = DEFAULT_EVENTO
    comentario: str = ""

    @classmethod
    def from_form_values(cls, values: dict[str, Any]) -> "InvoiceRecord":
        """
        Build a record from loosely-typed request values.

        Blank values are treated as missing, so `categoria`/`evento` fall back to their defaults.
        """
        cleaned: dict[str, str] = {}
        for key, value in (values or {}).items():
            if value is None:
                continue
            text = str(value).strip()
            if text:
                cleaned[key] = text
        return cls.model_validate(cleaned)


class SessionOutcome(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    failure_kind: Optional[str] = Field(default=None, alias="failureKind")
    data: Optional[InvoiceRecord] = None

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
