from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import AppConfig, load_config
from .logging_config import configure_logging
from .models import InvoiceRecord, PortalCredentials
from .portal.client import NFScanPortalClient
from .util.debug_bundle import create_debug_bundle


logger = logging.getLogger("nfscan_automation")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="nfscan_automation")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    p.add_argument("--config", default="config.yaml", help="Optional YAML config override (default: config.yaml)")

    sub = p.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API (health, process-nf, process-nf-url, test-auth)")
    serve.add_argument("--host", default="", help="Bind address (default: HOST or 0.0.0.0)")
    serve.add_argument("--port", type=int, default=0, help="Listen port (default: PORT or 3000)")

    process = sub.add_parser("process", help="Upload one NF PDF and fill its form from the command line")
    process.add_argument("pdf", help="Path to the NF PDF")
    process.add_argument("--numero-nf", default="")
    process.add_argument("--data-emissao", default="", help="Issue date, dd/mm/yyyy")
    process.add_argument("--valor", default="")
    process.add_argument("--cnpj", default="")
    process.add_argument("--razao-social", default="")
    process.add_argument("--categoria", default="")
    process.add_argument("--evento", default="")
    process.add_argument("--comentario", default="")
    process.add_argument("--headful", action="store_true", help="Run browser headful (debug)")
    process.add_argument("--step-debug", action="store_true", help="Save step-by-step screenshots under the debug dir.")

    auth = sub.add_parser("test-auth", help="Only log in through SSO (approve MFA on your phone), then exit")
    auth.add_argument("--headful", action="store_true", help="Run browser headful (debug)")

    return p


def _credentials_or_exit(cfg: AppConfig) -> PortalCredentials:
    if not cfg.credentials.identity or not cfg.credentials.secret:
        raise SystemExit("Missing credentials. Set BOSCH_ID and BOSCH_PASSWORD in .env (or credentials: in config.yaml).")
    return PortalCredentials(identity=cfg.credentials.identity, secret=cfg.credentials.secret)


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    cfg = load_config(args.config)
    configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path)

    if args.cmd == "serve":
        import uvicorn

        from .server import create_app

        host = args.host or cfg.server.host
        port = args.port or cfg.server.port
        logger.info("NFScan Automation API listening on http://%s:%d (health: /health)", host, port)
        uvicorn.run(create_app(cfg), host=host, port=port, log_config=None)
        return 0

    if args.cmd == "test-auth":
        client = NFScanPortalClient(settings=cfg.portal, creds=_credentials_or_exit(cfg))
        ok = client.test_auth(headless=False if args.headful else None)
        logger.info("Authentication %s", "succeeded" if ok else "failed")
        return 0 if ok else 1

    if args.cmd == "process":
        if args.step_debug:
            cfg = cfg.model_copy(update={"portal": cfg.portal.model_copy(update={"step_debug": True})})
        record = InvoiceRecord.from_form_values(
            {
                "numeroNF": args.numero_nf,
                "dataEmissao": args.data_emissao,
                "valor": args.valor,
                "cnpj": args.cnpj,
                "razaoSocial": args.razao_social,
                "categoria": args.categoria,
                "evento": args.evento,
                "comentario": args.comentario,
            }
        )
        client = NFScanPortalClient(settings=cfg.portal, creds=_credentials_or_exit(cfg))
        outcome = client.run_full_workflow(args.pdf, record, headless=False if args.headful else None)
        print(json.dumps(outcome.to_response(), ensure_ascii=False, indent=2))
        if outcome.success:
            return 0

        # Bundle screenshots + log for easy sharing.
        try:
            bundle = create_debug_bundle(
                debug_dir=cfg.portal.debug_dir,
                log_file=cfg.logging.file_path,
                out_dir="data",
                label=outcome.failure_kind or "failure",
            )
            print(f"Debug bundle written: {bundle}", file=sys.stderr)
        except OSError:
            logger.debug("Failed to create debug bundle.", exc_info=True)
        return 1

    raise SystemExit(f"Unknown command: {args.cmd}")
