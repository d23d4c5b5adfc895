"""structlog setup for Switchboard.

Every module logs through ``structlog.get_logger("switchboard.<area>")``.
Those names are ordinary stdlib loggers, so file routing is plain
``logging`` configuration:

    root                          console (stdout)
    switchboard                   logs/switchboard.log, every area
    switchboard.core              logs/core.log
    switchboard.dependencies      logs/dependencies.log
    switchboard.permissions       logs/permissions.log
    switchboard.dispatch          logs/dispatch.log
    switchboard.modules           logs/modules.log

An event therefore lands in its area file, the combined file and the
console. Levels can be raised or lowered per area from settings.yaml.
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict

import structlog

SUBSYSTEMS = ("core", "dependencies", "permissions", "dispatch", "modules")

LOGGER_PREFIX = "switchboard"

DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5

# ---------------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------------

_SECRET_PATTERNS = [
    # Discord bot token: id.timestamp.hmac
    re.compile(r"[MNO][a-zA-Z\d_-]{23,25}\.[a-zA-Z\d_-]{6}\.[a-zA-Z\d_-]{27,38}"),
    re.compile(r"sk-[a-zA-Z0-9_-]{20,}"),
    # Authorization header values
    re.compile(r"(?:Bearer|Bot)\s+[a-zA-Z0-9_./-]{20,}"),
    # user:password in a connection URL
    re.compile(r"(?<=://)[^:/\s]+:[^@/\s]+(?=@)"),
]

_REDACTED = "***REDACTED***"


def _scrub_value(value: str) -> str:
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    return value


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return _scrub_value(value)
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub_value(v) if isinstance(v, str) else v for v in value)
    if isinstance(value, dict):
        return {k: _scrub_value(v) if isinstance(v, str) else v for k, v in value.items()}
    return value


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor redacting tokens and URL credentials.

    Strings are scrubbed at the top level and one level into lists,
    tuples and dicts. Dependency failures tend to carry connection
    strings in their error text, which is why every event goes through
    here.
    """
    for key in list(event_dict):
        event_dict[key] = _scrub(event_dict[key])
    return event_dict


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _rotating_handler(
    path: Path, level: int, formatter: logging.Formatter, max_bytes: int, backup_count: int
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _level(name: str, default: int) -> int:
    return getattr(logging, str(name).upper(), default) if name else default


def _prepare_log_dir(log_dir: Path) -> bool:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        print(
            f"WARNING: log directory {log_dir} unavailable ({exc}), "
            "logging to the console only.",
            file=sys.stderr,
        )
        return False
    return True


def setup_logging(config=None) -> None:
    """Route structlog events to the console and per-area log files.

    Called twice by ``main``: once with no config so that startup
    messages are visible, and again once settings.yaml has been read.
    Only the second call lets structlog cache loggers, since the first
    configuration is about to be replaced.

    Args:
        config: Loaded Config, or None for built-in defaults.
    """
    if config is None:
        log_dir = Path(__file__).parent.parent / "logs"
        level = logging.INFO
        area_levels: Dict[str, str] = {}
        max_bytes, backup_count = DEFAULT_MAX_BYTES, DEFAULT_BACKUP_COUNT
    else:
        log_dir = config.log_dir
        level = _level(config.logging_level, logging.INFO)
        area_levels = config.logging_subsystem_levels
        max_bytes = config.logging_max_file_size_mb * 1024 * 1024
        backup_count = config.logging_backup_count

    files_enabled = _prepare_log_dir(log_dir)

    plain = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers.clear()
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    root.addHandler(console)

    combined = logging.getLogger(LOGGER_PREFIX)
    combined.setLevel(logging.DEBUG)
    combined.handlers.clear()
    combined.propagate = True
    if files_enabled:
        combined.addHandler(
            _rotating_handler(log_dir / "switchboard.log", level, plain, max_bytes, backup_count)
        )

    for area in SUBSYSTEMS:
        area_level = _level(area_levels.get(area, ""), level)
        area_logger = logging.getLogger(f"{LOGGER_PREFIX}.{area}")
        area_logger.setLevel(area_level)
        area_logger.handlers.clear()
        area_logger.propagate = True
        if files_enabled:
            area_logger.addHandler(
                _rotating_handler(log_dir / f"{area}.log", area_level, plain, max_bytes, backup_count)
            )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            sanitize_secrets,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=config is not None,
    )
