from __future__ import annotations

import time
import zipfile
from pathlib import Path


def create_debug_bundle(*, debug_dir: str, log_file: str, out_dir: str = "data", label: str = "") -> Path:
    """
    Zip the failure artifacts (screenshots, HTML, body text) together with the log file.

    Never includes `.env` or the config file. Login screenshots may show the SSO identity; the password field is masked.
    """
    out_root = Path(out_dir)
    out_root.mkdir(parents=True, exist_ok=True)

    stamp = time.strftime("%Y%m%d_%H%M%S")
    safe_label = "".join(ch for ch in (label or "").strip().lower() if ch.isalnum() or ch in "-_")
    label_part = f"_{safe_label}" if safe_label else ""
    out_path = out_root / f"debug_bundle{label_part}_{stamp}.zip"

    dbg = Path(debug_dir)
    log = Path(log_file) if log_file else None

    def _add_file(z: zipfile.ZipFile, file_path: Path, arcname: str) -> None:
        try:
            if file_path.exists() and file_path.is_file():
                z.write(file_path, arcname=arcname)
        except OSError:
            # a screenshot may be rotated away while zipping
            return

    with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as z:
        if log is not None:
            _add_file(z, log, arcname=log.name)

        if dbg.exists() and dbg.is_dir():
            for p in sorted(dbg.rglob("*")):
                if not p.is_file():
                    continue
                rel = p.relative_to(dbg)
                _add_file(z, p, arcname=str(Path("debug") / rel))

    return out_path
