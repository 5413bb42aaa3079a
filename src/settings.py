import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

ENV_CONFIG = "CERTCHAIN_CONFIG"
ENV_PREFIX = "CERTCHAIN_"

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    ledger_path: str = "ledger.json"
    ledger_pow_prefix: str = "00"
    explorer_tx_url: str = "https://polygonscan.com/tx/"
    upload_dir: str = "uploads"
    output_dir: str = "outputs/certificates"
    qr_error_correction: str = "H"
    max_upload_mb: int = 10
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000


def _coerce(name: str, raw, default):
    if isinstance(default, int):
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ValueError(f"Setting {name!r} must be an integer, got {raw!r}")
    return str(raw)


def load_config(path: Path) -> dict:
    if not path.exists():
        raise SystemExit(f"Missing config: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Config {path} must contain a JSON object")
    return data


def load_settings(path=None, environ=None) -> Settings:
    """Defaults, then the JSON config file, then CERTCHAIN_* environment variables."""
    environ = os.environ if environ is None else environ
    defaults = Settings()
    known = {f.name: getattr(defaults, f.name) for f in fields(Settings)}

    if path is None and environ.get(ENV_CONFIG):
        path = environ[ENV_CONFIG]

    overrides = {}
    if path is not None:
        cfg = load_config(Path(path))
        unknown = sorted(set(cfg) - set(known))
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        for k, v in cfg.items():
            overrides[k] = _coerce(k, v, known[k])

    for k, default in known.items():
        env_key = ENV_PREFIX + k.upper()
        if env_key in environ:
            overrides[k] = _coerce(k, environ[env_key], default)

    settings = replace(defaults, **overrides)
    if settings.qr_error_correction not in ("L", "M", "Q", "H"):
        raise ValueError(f"qr_error_correction must be one of L, M, Q, H, got {settings.qr_error_correction!r}")
    return settings


def configure_logging(level="INFO"):
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)
