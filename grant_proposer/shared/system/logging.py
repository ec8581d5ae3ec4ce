"""
Centralized Logger with Rich Console
====================================
Single logging facade for every stage of the proposal pipeline.

Usage:
    from grant_proposer.shared.system.logging import Logger

    Logger.info("[SUBMIT] Transaction sent")
    Logger.success("[POPULATE] Proposal signed off")
    Logger.warning("Something concerning")
    Logger.error("Something broke")
    Logger.section("Populating Proposal")

Console output goes through Rich. Every message is also written to a
per-run rotating log file under LOG_DIR (default: ./logs), created on the
first write.
"""

import os
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional

# Per-run session log file
_run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
_file_logger: Optional[logging.Logger] = None


def _get_file_logger() -> logging.Logger:
    global _file_logger
    if _file_logger is not None:
        return _file_logger

    log_dir = os.getenv("LOG_DIR", os.path.join(os.getcwd(), "logs"))
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f"grant_proposer_{_run_id}.log")

    handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    handler.setFormatter(formatter)

    file_logger = logging.getLogger("GrantProposer")
    file_logger.setLevel(logging.DEBUG)
    file_logger.propagate = False
    if not file_logger.handlers:
        file_logger.addHandler(handler)

    _file_logger = file_logger
    return file_logger


# =============================================================================
# SOURCE ICONS (for visual scanning)
# =============================================================================

SOURCE_ICONS = {
    "SYSTEM": "🛸",
    "LEDGER": "📡",
    "SIGNER": "🔐",
    "SUBMIT": "🚀",
    "POPULATE": "📝",
    "EXECUTE": "⚙️",
    "RECOVERY": "🩹",
    "GRANT": "💰",
    "CONFIG": "🧭",
}


# =============================================================================
# RICH CONSOLE
# =============================================================================

from rich.console import Console
from rich.text import Text

_console = Console(stderr=True)

# Level colors for Rich
LEVEL_STYLES = {
    "INFO": "cyan",
    "SUCCESS": "green bold",
    "WARNING": "yellow",
    "ERROR": "red bold",
    "DEBUG": "dim",
    "CRITICAL": "red bold reverse",
}

_FILE_LEVELS = {
    "INFO": logging.INFO,
    "SUCCESS": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "DEBUG": logging.DEBUG,
    "CRITICAL": logging.CRITICAL,
}


# =============================================================================
# LOGGER CLASS
# =============================================================================

class Logger:
    """
    Static logging facade.

    Every call goes to the per-run file; console output can be silenced
    with SILENT_MODE or set_silent(). Debug lines are file-only.
    """

    _silent_mode = os.getenv("SILENT_MODE", "").lower() in ("1", "true", "yes")

    @staticmethod
    def _parse_source(message: str) -> tuple:
        """Split a leading [SOURCE] tag off the message."""
        stripped = message.strip()
        if stripped.startswith("[") and "]" in stripped:
            tag_end = stripped.index("]")
            source = stripped[1:tag_end].upper()
            if 0 < len(source) < 15:
                return source, stripped[tag_end + 1:].strip()
        return "SYSTEM", message

    @staticmethod
    def _console_line(level: str, source: str, message: str) -> Text:
        now = datetime.now()
        icon = SOURCE_ICONS.get(source, "")
        return Text.assemble(
            (f"{now:%H:%M:%S}.{now.microsecond // 1000:03d} ", "dim"),
            (f"| {level:<8} ", LEVEL_STYLES.get(level, "white")),
            (f"| {source[:10]:<10} | ", "dim"),
            f"{icon} {message}" if icon else message,
        )

    @staticmethod
    def _emit(level: str, message: str, console: bool = True, marker: str = "") -> None:
        source, msg = Logger._parse_source(message)
        if marker:
            msg = f"{marker} {msg}"

        if console and not Logger._silent_mode:
            _console.print(Logger._console_line(level, source, msg))
        _get_file_logger().log(_FILE_LEVELS.get(level, logging.INFO), f"[{source}] {msg}")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @staticmethod
    def info(message: str) -> None:
        Logger._emit("INFO", message)

    @staticmethod
    def success(message: str) -> None:
        Logger._emit("SUCCESS", message, marker="✅")

    @staticmethod
    def warning(message: str) -> None:
        Logger._emit("WARNING", message)

    @staticmethod
    def error(message: str) -> None:
        Logger._emit("ERROR", message)

    @staticmethod
    def debug(message: str) -> None:
        Logger._emit("DEBUG", message, console=False)

    @staticmethod
    def critical(message: str) -> None:
        Logger._emit("CRITICAL", message, marker="🛑")

    @staticmethod
    def section(title: str) -> None:
        if not Logger._silent_mode:
            _console.print()
            _console.rule(f"[bold magenta]{title}[/]", style="dim")
        _get_file_logger().info(f"[SYSTEM] === {title} ===")

    @staticmethod
    def set_silent(silent: bool) -> None:
        Logger._silent_mode = silent
