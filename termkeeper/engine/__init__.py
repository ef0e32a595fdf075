"""termkeeper: stable (project, tag) terminal sessions and safe process kills."""
from .errors import (
    ConfigError,
    DriverError,
    InvalidProcessGroupError,
    InvalidTagError,
    ProcessInspectionError,
    SessionNotFoundError,
    TermkeeperError,
)
from .config import TerminatorConfig

__all__ = [
    # Config
    "TerminatorConfig",
    "RuntimeContext",
    "load_yaml_config",
    "configure_logging",
    # Session manager (lazy import)
    "SessionManager",
    "TabSnapshot",
    "TerminalDriver",
    # Errors
    "ConfigError",
    "DriverError",
    "InvalidProcessGroupError",
    "InvalidTagError",
    "ProcessInspectionError",
    "SessionNotFoundError",
    "TermkeeperError",
]


def __getattr__(name: str):
    if name == "RuntimeContext":
        from .context import RuntimeContext
        return RuntimeContext
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    if name == "configure_logging":
        from .logging_setup import configure_logging
        return configure_logging
    if name == "SessionManager":
        from .session_manager import SessionManager
        return SessionManager
    if name == "TabSnapshot":
        from .session_manager import TabSnapshot
        return TabSnapshot
    if name == "TerminalDriver":
        from .session_manager import TerminalDriver
        return TerminalDriver
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
