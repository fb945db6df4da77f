from __future__ import annotations

import logging
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import requests
from fastapi import FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from .config import AppConfig, load_config
from .models import InvoiceRecord, PortalCredentials
from .portal.client import NFScanPortalClient


logger = logging.getLogger(__name__)

SERVICE_NAME = "NFScan Automation"
PDF_CONTENT_TYPE = "application/pdf"
_CHUNK_SIZE = 64 * 1024

ClientFactory = Callable[[PortalCredentials], NFScanPortalClient]


class PayloadTooLargeError(ValueError):
    pass


class CredentialsPayload(BaseModel):
    identity: str = Field(default="", validation_alias=AliasChoices("boschId", "identity", "id"))
    secret: str = Field(default="", validation_alias=AliasChoices("password", "secret"), repr=False)


class ProcessUrlRequest(BaseModel):
    pdf_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("pdfUrl", "pdf_url"))
    nf_data: dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("nfData", "nf_data"))
    credentials: Optional[CredentialsPayload] = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "timestamp": _now_iso()},
    )


def _resolve_credentials(identity: str, secret: str, cfg: AppConfig) -> Optional[PortalCredentials]:
    # Request values win; the service's own env/config credentials are the fallback.
    identity = (identity or "").strip() or cfg.credentials.identity
    secret = secret or cfg.credentials.secret
    if not identity or not secret:
        return None
    return PortalCredentials(identity=identity, secret=secret)


def _new_temp_path(upload_dir: str) -> Path:
    root = Path(upload_dir)
    root.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix="nf_", suffix=".pdf", dir=root)
    os.close(fd)
    return Path(name)


def _write_limited(chunks: Iterable[bytes], dest: Path, max_bytes: int) -> int:
    total = 0
    with dest.open("wb") as out:
        for chunk in chunks:
            if not chunk:
                continue
            total += len(chunk)
            if total > max_bytes:
                raise PayloadTooLargeError(f"PDF excede o limite de {max_bytes // (1024 * 1024)}MB")
            out.write(chunk)
    return total


def _remove_temp(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.error("Failed to delete temporary file %s: %s", path, e)


def download_pdf(url: str, dest: Path, *, max_bytes: int, timeout_s: float) -> int:
    logger.info("Downloading PDF from %s", url)
    with requests.get(url, stream=True, timeout=timeout_s) as resp:
        resp.raise_for_status()
        return _write_limited(resp.iter_content(chunk_size=_CHUNK_SIZE), dest, max_bytes)


def create_app(config: Optional[AppConfig] = None, *, client_factory: Optional[ClientFactory] = None) -> FastAPI:
    cfg = config or load_config()

    def _default_client_factory(creds: PortalCredentials) -> NFScanPortalClient:
        return NFScanPortalClient(settings=cfg.portal, creds=creds)

    app = FastAPI(title="NFScan Automation API", version="1.0.0")
    app.state.config = cfg
    app.state.client_factory = client_factory or _default_client_factory
    app.state.started_at = time.monotonic()

    def _process(fill_pdf: Callable[[Path], Any], creds: PortalCredentials, record: InvoiceRecord) -> JSONResponse:
        started = time.monotonic()
        pdf_path: Optional[Path] = None
        try:
            pdf_path = _new_temp_path(cfg.server.upload_dir)
            fill_pdf(pdf_path)

            logger.info("Processing NF %s (%s)", record.numero_nf or "?", record.razao_social or "?")
            client = app.state.client_factory(creds)
            outcome = client.run_full_workflow(pdf_path, record)

            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.info(
                "Processing finished (success=%s processing_ms=%d nf=%s)",
                outcome.success,
                elapsed_ms,
                record.numero_nf or "?",
            )
            body = outcome.to_response()
            body["processingTime"] = f"{elapsed_ms}ms"
            body["timestamp"] = _now_iso()
            return JSONResponse(body)
        except PayloadTooLargeError as e:
            return _error(413, str(e))
        except Exception as e:
            logger.exception("NF processing failed")
            return _error(500, str(e))
        finally:
            if pdf_path is not None:
                _remove_temp(pdf_path)

    @app.get("/health")
    def health() -> dict:
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "timestamp": _now_iso(),
            "uptime": round(time.monotonic() - app.state.started_at, 3),
        }

    @app.post("/process-nf")
    def process_nf(
        pdf: Optional[UploadFile] = File(None),
        numero_nf: str = Form("", alias="numeroNF"),
        data_emissao: str = Form("", alias="dataEmissao"),
        valor: str = Form(""),
        cnpj: str = Form(""),
        razao_social: str = Form("", alias="razaoSocial"),
        categoria: str = Form(""),
        evento: str = Form(""),
        comentario: str = Form(""),
        bosch_id: str = Form("", alias="boschId"),
        password: str = Form(""),
    ) -> JSONResponse:
        if pdf is None or not pdf.filename:
            return _error(400, "Arquivo PDF é obrigatório")
        if (pdf.content_type or "").split(";", 1)[0].strip().lower() != PDF_CONTENT_TYPE:
            return _error(400, "Apenas arquivos PDF são permitidos")

        creds = _resolve_credentials(bosch_id, password, cfg)
        if creds is None:
            return _error(400, "Credenciais Bosch são obrigatórias")

        record = InvoiceRecord.from_form_values(
            {
                "numeroNF": numero_nf,
                "dataEmissao": data_emissao,
                "valor": valor,
                "cnpj": cnpj,
                "razaoSocial": razao_social,
                "categoria": categoria,
                "evento": evento,
                "comentario": comentario,
            }
        )

        def _fill(dest: Path) -> None:
            _write_limited(iter(lambda: pdf.file.read(_CHUNK_SIZE), b""), dest, cfg.server.max_upload_bytes)

        return _process(_fill, creds, record)

    @app.post("/process-nf-url")
    def process_nf_url(payload: ProcessUrlRequest) -> JSONResponse:
        if not (payload.pdf_url or "").strip():
            return _error(400, "URL do PDF é obrigatória")

        given = payload.credentials or CredentialsPayload()
        creds = _resolve_credentials(given.identity, given.secret, cfg)
        if creds is None:
            return _error(400, "Credenciais Bosch são obrigatórias")

        record = InvoiceRecord.from_form_values(payload.nf_data)
        url = payload.pdf_url.strip()

        def _fill(dest: Path) -> None:
            download_pdf(
                url,
                dest,
                max_bytes=cfg.server.max_upload_bytes,
                timeout_s=cfg.server.download_timeout_s,
            )

        return _process(_fill, creds, record)

    @app.post("/test-auth")
    def check_auth(payload: Optional[CredentialsPayload] = None) -> JSONResponse:
        given = payload or CredentialsPayload()
        creds = _resolve_credentials(given.identity, given.secret, cfg)
        if creds is None:
            return _error(400, "Credenciais Bosch são obrigatórias")
        try:
            ok = app.state.client_factory(creds).test_auth()
        except Exception as e:
            logger.exception("Authentication test failed")
            return _error(500, str(e))
        return JSONResponse(
            {
                "success": ok,
                "message": "Autenticação bem sucedida" if ok else "Falha na autenticação",
            }
        )

    return app
