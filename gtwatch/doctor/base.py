"""Doctor check primitives — results, context, and the check base classes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class CheckStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


class CheckCategory(str, Enum):
    CORE = "core"
    CLEANUP = "cleanup"


class CheckResult(BaseModel):
    name: str
    status: CheckStatus
    message: str
    details: list[str] = Field(default_factory=list)
    fix_hint: str = ""


class FixReport(BaseModel):
    """What a fix pass did (or, in dry-run, would do)."""

    name: str
    dry_run: bool = False
    killed: int = 0
    skipped: int = 0  # Failed re-verification at kill time
    protected: int = 0  # Excluded by a hard safety rule
    gone: int = 0  # Exited on their own before we got to them
    actions: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


@dataclass
class CheckContext:
    town_root: Path
    dry_run: bool = False
    verbose: bool = False


class BaseCheck(ABC):
    name: str = ""
    description: str = ""
    category: CheckCategory = CheckCategory.CORE

    @abstractmethod
    def run(self, ctx: CheckContext) -> CheckResult:
        """Inspect the system. Must not raise for unreachable resources."""

    def can_fix(self) -> bool:
        return False

    def _result(self, status: CheckStatus, message: str, **kwargs) -> CheckResult:
        return CheckResult(name=self.name, status=status, message=message, **kwargs)


class FixableCheck(BaseCheck):
    def can_fix(self) -> bool:
        return True

    @abstractmethod
    def fix(self, ctx: CheckContext) -> FixReport:
        """Act on what the last ``run`` found."""
