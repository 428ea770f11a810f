"""
TUI Debug Logger

File-only debug logging for the dashboard. The terminal belongs to the TUI,
so nothing is written to the console; with --debug everything goes to a log
file with credentials masked.
"""

import logging
from typing import Any, Optional

DEFAULT_DEBUG_FILE = "/tmp/wharf-debug.log"
LOG_FORMAT = "%(asctime)s [WHARF-DEBUG] %(name)s: %(message)s"

SENSITIVE_KEYWORDS = [
    # Passwords and passphrases
    'password', 'passwd', 'pass', 'passphrase', 'pwd',
    # Actual tokens and credentials (but not metadata about them)
    'token', 'credential', 'cred', 'creds', 'credentials',
    # Authentication secrets (but not types like auth_type)
    'authorization', 'authenticate',
    # API keys and secrets
    'secret', 'private', 'api_key', 'apikey', 'access_key',
]

# Context keys that look sensitive but only describe whether a secret exists
SAFE_KEYS = {'has_password', 'has_token', 'has_credentials', 'password_provided'}


def mask_value(key: str, value: Any) -> str:
    """Mask sensitive data like passwords, tokens, and auth headers"""
    lowered = key.lower()
    if lowered in SAFE_KEYS:
        return str(value)

    if any(keyword in lowered for keyword in SENSITIVE_KEYWORDS):
        if isinstance(value, str) and len(value) > 0:
            if len(value) <= 8:
                return "[REDACTED]"
            # Show first 3 and last 3 characters for identification
            return f"{value[:3]}...{value[-3:]}"
        return "[REDACTED]"

    return str(value)


class TUIDebugLogger:
    """Debug logger for TUI and registry operations"""

    def __init__(self, enabled: bool = False, verbose: bool = False, debug_file_path: Optional[str] = None):
        self.enabled = enabled
        self.verbose = verbose
        self.debug_file_path = debug_file_path or DEFAULT_DEBUG_FILE
        self.handler = None

        if enabled:
            self.handler = logging.FileHandler(self.debug_file_path)
            self.handler.setFormatter(logging.Formatter(LOG_FORMAT))

            root = logging.getLogger()
            root.setLevel(logging.DEBUG)
            root.addHandler(self.handler)

            if not verbose:
                # Silence noisy HTTP libraries unless verbose mode
                for name in ('httpcore', 'httpx', 'asyncio'):
                    logging.getLogger(name).setLevel(logging.WARNING)

            self.logger = logging.getLogger('wharf.tui')
            mode_text = "VERBOSE" if verbose else "STANDARD"
            self.logger.info(f"=== Debug Mode ({mode_text}) Enabled - Logging to: {self.debug_file_path} ===")
        else:
            self.logger = None

    @staticmethod
    def format_message(message: str, **kwargs) -> str:
        safe_kwargs = {k: mask_value(k, v) for k, v in kwargs.items()}
        context = ", ".join(f"{k}={v}" for k, v in safe_kwargs.items())
        return f"{message}" + (f" | {context}" if context else "")

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context"""
        if self.enabled and self.logger:
            self.logger.debug(self.format_message(message, **kwargs))

    def info(self, message: str, **kwargs):
        if self.enabled and self.logger:
            self.logger.info(self.format_message(message, **kwargs))

    def warning(self, message: str, **kwargs):
        if self.enabled and self.logger:
            self.logger.warning(self.format_message(message, **kwargs))

    def error(self, message: str, **kwargs):
        if self.enabled and self.logger:
            self.logger.error(self.format_message(message, **kwargs))

    def close(self) -> None:
        """Detach the file handler from the root logger"""
        if self.handler:
            logging.getLogger().removeHandler(self.handler)
            self.handler.close()
            self.handler = None
