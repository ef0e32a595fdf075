"""Explicit runtime context.

Settings, the diagnostic logger and OS access are carried in one object
handed to the session manager and CLI, instead of living in module
globals. The core services take the same pieces as optional arguments
and work without any of them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from termkeeper.shared.services.process_inspector import (
    PosixProcessOps,
    ProcessOps,
)
from termkeeper.shared.services.process_terminator import ProcessGroupTerminator

from .config import TerminatorConfig


@dataclass
class RuntimeContext:
    config: TerminatorConfig = field(default_factory=TerminatorConfig)
    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger("termkeeper")
    )
    ops: ProcessOps = field(default_factory=PosixProcessOps)

    @classmethod
    def from_env(cls) -> RuntimeContext:
        return cls(config=TerminatorConfig.from_env())

    def terminator(self, **kwargs) -> ProcessGroupTerminator:
        """A terminator using this context's grace periods and OS access."""
        return ProcessGroupTerminator(
            ops=self.ops,
            sigint_wait_seconds=self.config.sigint_wait_seconds,
            sigterm_wait_seconds=self.config.sigterm_wait_seconds,
            log=self.logger,
            **kwargs,
        )
