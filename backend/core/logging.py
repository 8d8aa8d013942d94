"""Centralized logging configuration with JSON output and PII redaction."""

import json
import logging
import re
import sys
from datetime import datetime, timezone

from backend.core.config import settings

# Attributes every LogRecord carries; everything else came in via ``extra``
_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread", "threadName",
        "processName", "process", "message", "taskName",
    }
)


class PIIRedactionFilter(logging.Filter):
    """Filter to redact PII from log messages."""

    def __init__(self):
        super().__init__()
        # German/EU VAT id: 2 letters + 8-12 digits (checked before IBAN)
        self.vat_pattern = re.compile(r'\b([A-Z]{2}\d{8,12})\b')
        # IBAN pattern: 2 letters + 2 digits + up to 30 alphanumeric characters
        self.iban_pattern = re.compile(r'\b([A-Z]{2}\d{2}[A-Z0-9]{11,30})\b')
        self.email_pattern = re.compile(r'(\b\S+@\S+\.\S+\b)')
        self.phone_pattern = re.compile(r'(\+\d[\d \-/]{6,}\d)')
        # token=..., "token": "..."
        self.token_pattern = re.compile(r'(token["\']?\s*[:=]\s*["\']?)([^\s"\',}]+)', re.IGNORECASE)

    def redact(self, text: str) -> str:
        if not isinstance(text, str):
            return text
        text = self.token_pattern.sub(lambda m: m.group(1) + "***", text)
        text = self.iban_pattern.sub(self._mask_iban, text)
        text = self.vat_pattern.sub(self._mask_vat, text)
        text = self.email_pattern.sub(self._mask_email, text)
        text = self.phone_pattern.sub(self._mask_phone, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact PII from log record message and string args."""
        if getattr(record, 'msg', None):
            record.msg = self.redact(str(record.msg))

        if getattr(record, 'args', None):
            if isinstance(record.args, dict):
                record.args = {
                    k: self.redact(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            else:
                record.args = tuple(
                    self.redact(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def _mask_iban(self, match) -> str:
        """Mask IBAN: show first 2 chars, mask the rest."""
        iban = match.group(1)
        return iban[:2] + "*" * (len(iban) - 2)

    def _mask_vat(self, match) -> str:
        """Mask VAT id: keep country prefix and last 3 digits."""
        vat = match.group(1)
        return vat[:2] + "*" * (len(vat) - 5) + vat[-3:]

    def _mask_email(self, match) -> str:
        """Mask email: show first char of user, keep domain."""
        email = match.group(1)
        if "@" not in email:
            return email
        user, domain = email.split("@", 1)
        if len(user) <= 1:
            masked_user = "*"
        else:
            masked_user = user[0] + "*" * (len(user) - 1)
        return f"{masked_user}@{domain}"

    def _mask_phone(self, match) -> str:
        """Mask phone: show first 3 chars, mask the rest."""
        phone = match.group(1)
        return phone[:3] + "*" * (len(phone) - 3)


class JSONFormatter(logging.Formatter):
    """JSON formatter with mandatory fields and redacted extras."""

    def __init__(self):
        super().__init__()
        self._redactor = PIIRedactionFilter()

    def format(self, record):
        log_entry = {
            'level': record.levelname.lower(),
            'logger': record.name,
            'msg': self._redactor.redact(record.getMessage()),
            'ts_utc': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith('_'):
                continue
            if isinstance(value, str):
                value = self._redactor.redact(value)
            log_entry[key] = value

        if record.exc_info:
            log_entry['exc'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def init_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Install a single stdout handler on the root logger."""
    root_logger = logging.getLogger()
    level_name = (level or settings.log_level).upper()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    use_json = settings.log_json if json_output is None else json_output
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler.addFilter(PIIRedactionFilter())
    root_logger.addHandler(handler)
