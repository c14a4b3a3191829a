import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
lineup_hash_var: ContextVar[Optional[str]] = ContextVar('lineup_hash', default=None)
platform_var: ContextVar[Optional[str]] = ContextVar('platform', default=None)
phase_var: ContextVar[Optional[str]] = ContextVar('phase', default=None)


CREDENTIAL_PATTERNS = [
    re.compile(pattern) for pattern in (
        # key=value style secrets
        r'(?i)(token|key|secret|password|auth)\s*[:=]\s*["\']?([\w\-\.]{10,})["\']?',
        r'(?i)(spotify_access_token|access_token|client_secret)\s*[:=]\s*["\']?([\w\-\.]{20,})["\']?',
        # Apple Music tokens may be base64
        r'(?i)(music-user-token|apple_music_user_token|developer_token)\s*[:=]\s*["\']?([\w\-\.\+/=]{20,})["\']?',
        # Authorization headers
        r'(?i)(authorization|bearer)\s*[:=]?\s+["\']?([\w\-\.]{20,})["\']?',
    )
]

PRIVATE_KEY_PATTERN = re.compile(
    r'-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----',
    re.DOTALL,
)


def _partially_mask(secret: str) -> str:
    if len(secret) <= 8:
        return '*' * len(secret)
    return f"{secret[:4]}{'*' * (len(secret) - 8)}{secret[-4:]}"


class SecretMasker:
    """Masks platform credentials and signing keys in log output."""

    def __init__(self, patterns=None):
        self.patterns = patterns or CREDENTIAL_PATTERNS

    @staticmethod
    def _replace(match) -> str:
        return f"{match.group(1)}: {_partially_mask(match.group(2))}"

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked = PRIVATE_KEY_PATTERN.sub('[PRIVATE KEY]', text)
        for pattern in self.patterns:
            masked = pattern.sub(self._replace, masked)
        return masked

    def mask_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.mask_secrets(value)
        if isinstance(value, dict):
            return self.mask_dict(value)
        if isinstance(value, (list, tuple)):
            return [self.mask_value(item) for item in value]
        return value

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask every string nested in ``data``."""
        return {key: self.mask_value(value) for key, value in (data or {}).items()}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as one JSON line."""
        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.masker.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        request_id = request_id_var.get()
        lineup_hash = lineup_hash_var.get()
        platform = platform_var.get()
        phase = phase_var.get()
        if request_id:
            log_entry['requestId'] = request_id
        if lineup_hash:
            log_entry['lineupHash'] = lineup_hash
        if platform:
            log_entry['platform'] = platform
        if phase:
            log_entry['phase'] = phase

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'fields') and record.fields:
            log_entry['fields'] = self.masker.mask_dict(record.fields)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class CorrelationContext:
    """Context manager setting correlation data for the enclosed log lines."""

    def __init__(self, request_id: Optional[str] = None,
                 lineup_hash: Optional[str] = None,
                 platform: Optional[str] = None,
                 phase: Optional[str] = None):
        self._values = {
            request_id_var: request_id,
            lineup_hash_var: lineup_hash,
            platform_var: platform,
            phase_var: phase,
        }
        self._tokens = []

    def __enter__(self):
        for var, value in self._values.items():
            if value is not None:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def setup_logging(level: str = 'INFO',
                  log_file: Optional[str] = None,
                  structured: bool = True) -> logging.Logger:
    """Configure the ``festmix`` logger with JSON (or plain) output."""
    logger = logging.getLogger('festmix')
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    if structured:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None,
                    exc_info: bool = False, **kwargs):
    """Log message with additional structured fields."""
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(
        logger.name, levelno, '', 0, message, (), None
    )
    if exc_info and sys.exc_info()[0] is not None:
        record.exc_info = sys.exc_info()

    merged = dict(fields or {})
    merged.update(kwargs)
    if merged:
        record.fields = merged

    logger.handle(record)


# Convenience functions for common logging patterns
def log_resolution_start(logger: logging.Logger, platform: str, artist_count: int, **kwargs):
    with CorrelationContext(phase='start'):
        log_with_fields(logger, 'INFO', 'Track resolution started', {
            'platform': platform,
            'artist_count': artist_count,
            **kwargs
        })


def log_phase_complete(logger: logging.Logger, phase: str, items: int, **kwargs):
    with CorrelationContext(phase=phase):
        log_with_fields(logger, 'INFO', f'Phase {phase} completed', {
            'items': items,
            **kwargs
        })


def log_resolution_complete(logger: logging.Logger, found_artists: int,
                            total_artists: int, tracks_found: int, **kwargs):
    with CorrelationContext(phase='complete'):
        log_with_fields(logger, 'INFO', 'Track resolution completed', {
            'found_artists': found_artists,
            'total_artists': total_artists,
            'tracks_found': tracks_found,
            **kwargs
        })


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs):
    """Log error with exception details."""
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    }, exc_info=True)
