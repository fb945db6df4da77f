from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Literal, Mapping, Optional, Sequence

from playwright.sync_api import Error as PlaywrightError


@dataclass(frozen=True)
class LocatorSpec:
    """
    One way of finding a control on the page.

    - kind="css": any Playwright selector string (`input[name*="valor"]`, `button:has-text("Salvar")`)
    - kind="text": case-insensitive regex matched against element text
    - kind="role": ARIA role + case-insensitive regex on the accessible name
    """

    kind: Literal["css", "text", "role"]
    value: str
    role: str = ""

    def resolve(self, scope):
        """Build a (lazy) Playwright locator; nothing is queried until it is counted/used. `scope` is Page or Frame."""
        if self.kind == "css":
            return scope.locator(self.value)
        if self.kind == "text":
            return scope.get_by_text(re.compile(self.value, re.I))
        return scope.get_by_role(self.role, name=re.compile(self.value, re.I))

    def describe(self) -> str:
        if self.kind == "role":
            return f"role={self.role}[name~/{self.value}/i]"
        if self.kind == "text":
            return f"text~/{self.value}/i"
        return self.value


def css(*selectors: str) -> tuple[LocatorSpec, ...]:
    return tuple(LocatorSpec("css", s) for s in selectors)


def text(*patterns: str) -> tuple[LocatorSpec, ...]:
    return tuple(LocatorSpec("text", p) for p in patterns)


def role(role_name: str, *patterns: str) -> tuple[LocatorSpec, ...]:
    return tuple(LocatorSpec("role", p, role=role_name) for p in patterns)


def first_present(scope, candidates: Sequence[LocatorSpec]):
    """
    Evaluate candidates in order and return the first match (as a single-element locator), or None.

    "Present" means attached to the DOM; hidden file inputs and custom widgets still count.
    """
    for cand in candidates:
        loc = cand.resolve(scope)
        try:
            if loc.count() > 0:
                return loc.first
        except PlaywrightError:
            # The page may be mid-navigation; treat as not present yet.
            continue
    return None


@dataclass(frozen=True)
class FieldSelector:
    field: str
    attribute: str
    candidates: tuple[LocatorSpec, ...]


DEFAULT_FIELD_SELECTORS: tuple[FieldSelector, ...] = (
    FieldSelector(
        "valor",
        "valor",
        css('input[name*="valor"]', 'input[name*="amount"]', 'input[placeholder*="R$"]', "input.currency"),
    ),
    FieldSelector(
        "numeroNota",
        "numero_nf",
        css(
            'input[name*="numero"]',
            'input[name*="number"]',
            'input[placeholder*="número"]',
            'input[placeholder*="NF"]',
        ),
    ),
    FieldSelector(
        "dataEmissao",
        "data_emissao",
        css(
            'input[type="date"]',
            'input[name*="data"]',
            'input[name*="date"]',
            'input[placeholder*="dd/mm/yyyy"]',
        ),
    ),
    FieldSelector(
        "cnpj",
        "cnpj",
        css(
            'input[name*="cnpj"]',
            'input[name*="CNPJ"]',
            'input[placeholder*="CNPJ"]',
            'input[placeholder*="00.000.000/0001-00"]',
        ),
    ),
    FieldSelector(
        "razaoSocial",
        "razao_social",
        css(
            'input[name*="razao"]',
            'input[name*="empresa"]',
            'input[name*="company"]',
            'input[placeholder*="Razão Social"]',
        ),
    ),
    FieldSelector(
        "evento",
        "evento",
        css('input[name*="evento"]', 'input[name*="event"]', 'textarea[name*="evento"]'),
    ),
    FieldSelector(
        "comentario",
        "comentario",
        css(
            'textarea[name*="comentario"]',
            'textarea[name*="comment"]',
            'textarea[name*="observa"]',
            'input[name*="descri"]',
        ),
    ),
)


@dataclass(frozen=True)
class PortalSelectors:
    """
    NFScan (and its Microsoft SSO) is a third-party UI; selectors may change over time.
    Keep all UI selectors/text hooks here for easy maintenance.
    """

    # SSO login
    sso_entry: tuple[LocatorSpec, ...] = css(
        'button:has-text("Entrar com meu BOSCH ID")',
        'a:has-text("Entrar com meu BOSCH ID")',
    )
    email_input: tuple[LocatorSpec, ...] = css(
        'input[type="email"]',
        'input[name="loginfmt"]',
        'input[placeholder*="@bosch.com"]',
    )
    email_next: tuple[LocatorSpec, ...] = css(
        'input[type="submit"][value="Avançar"]',
        'input[type="submit"][value="Next"]',
        "button#idSIButton9",
        "input#idSIButton9",
    )
    password_input: tuple[LocatorSpec, ...] = css('input[type="password"]')
    password_submit: tuple[LocatorSpec, ...] = css(
        'input[type="submit"][value="Entrar"]',
        'input[type="submit"][value="Sign in"]',
        "button#idSIButton9",
        "input#idSIButton9",
    )

    # MFA (Microsoft Authenticator push approval)
    mfa_prompt: tuple[LocatorSpec, ...] = css("#idDiv_SAOTCAS_Title", "#idRichContext_DisplaySign") + text(
        r"aprovar solicitação de entrada",
        r"approve sign in request",
    )

    # "Stay signed in?" (KMSI) prompt shown after MFA approval
    stay_signed_in_prompt: tuple[LocatorSpec, ...] = css('input[name="DontShowAgain"]', "#KmsiCheckboxField") + text(
        r"continuar conectado",
        r"stay signed in",
    )
    stay_signed_in_checkbox: tuple[LocatorSpec, ...] = css(
        'input[type="checkbox"][name="DontShowAgain"]',
        "#KmsiCheckboxField",
    )
    stay_signed_in_accept: tuple[LocatorSpec, ...] = css(
        'input[type="submit"][value="Sim"]',
        'input[type="submit"][value="Yes"]',
        'button:has-text("Sim")',
    )

    # Portal home: the "Escanear" action both confirms login and starts an upload.
    home_ready: tuple[LocatorSpec, ...] = css('button:has-text("Escanear")', 'a:has-text("Escanear")')
    geolocation_allow: tuple[LocatorSpec, ...] = css(
        'button:has-text("Permitir ao acessar o site")',
        'button:has-text("Permitir desta vez")',
    )

    # Upload + analysis
    file_input: tuple[LocatorSpec, ...] = css('input[type="file"]')
    upload_save: tuple[LocatorSpec, ...] = css('button:has-text("Salvar")', 'input[value="Salvar"]')
    analysis_in_progress: tuple[LocatorSpec, ...] = text(r"aguardando|analisando|iniciando análise")

    # Final save
    final_save: tuple[LocatorSpec, ...] = css(
        'button:has-text("Salvar"):not([disabled])',
        'input[type="submit"][value="Salvar"]:not([disabled])',
    )
    # Only the success text; the home control counts separately once the form is gone.
    save_confirmation: tuple[LocatorSpec, ...] = text(r"salvo com sucesso|successfully saved|documento anexado")

    # Form
    fields: tuple[FieldSelector, ...] = DEFAULT_FIELD_SELECTORS
    category_select: tuple[LocatorSpec, ...] = css('select[name*="categoria"]', 'select[name*="category"]')
    category_dropdown: tuple[LocatorSpec, ...] = css(
        '[class*="dropdown"][class*="categoria"]',
        '[class*="category"]',
    )

    def category_options(self, category: str) -> tuple[LocatorSpec, ...]:
        pattern = re.escape(category)
        return role("option", pattern) + text(pattern)

    def with_field_overrides(self, overrides: Optional[Mapping[str, Sequence[str]]]) -> "PortalSelectors":
        """
        Replace the CSS candidates of named fields (keyed by form field name, e.g. "valor", "numeroNota").

        Unknown names are ignored, so a stale config entry cannot break the run.
        """
        if not overrides:
            return self
        fields = tuple(
            replace(f, candidates=css(*overrides[f.field])) if overrides.get(f.field) else f
            for f in self.fields
        )
        return replace(self, fields=fields)


@dataclass(frozen=True)
class FieldMapping:
    field: str
    candidates: tuple[LocatorSpec, ...]
    value: str = ""
