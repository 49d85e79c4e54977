"""
Provisioning events - one JSON line per notable step of a synth/deploy pass.

    {"timestamp": "2026-10-19T09:00:00+00:00", "environment": "staging",
     "service": "RDS", "message": "Database password reused",
     "details": {"prior_state": "valid_prior_record"}}

Call `setup_logging()` once at process startup (done in infra/app.py and the
scripts). Never pass secret values as details.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Send log records to stderr; stdout stays clean for `cdk synth` output."""
    global _configured
    if _configured:
        return
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
        format="%(levelname)s %(name)s %(message)s",
    )
    _configured = True


def log_event(env: str, service: str, message: str, **details: Any) -> dict:
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "environment": env,
        "service": service,
        "message": message,
    }
    if details:
        payload["details"] = details
    logger.info(json.dumps(payload, default=str))
    return payload
