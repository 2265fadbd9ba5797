"""Schemas for plugin load-order analysis."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from modlens.schemas.plugin import PluginFlags, PluginHeader, PluginType


class IssueType(StrEnum):
    missing_master = "missing_master"
    wrong_order = "wrong_order"
    duplicate_plugin = "duplicate_plugin"


class IssueSeverity(StrEnum):
    error = "error"
    warning = "warning"


class PluginFile(BaseModel):
    """One entry of a load order.  ``header`` is ``None`` when decoding failed."""

    model_config = ConfigDict(frozen=True)

    filename: str
    header: PluginHeader | None = None


class LoadOrderIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: IssueType
    severity: IssueSeverity
    plugin: str
    related_plugin: str | None = None
    message: str
    index: int


class PluginInfo(BaseModel):
    filename: str
    index: int
    plugin_type: PluginType
    flags: PluginFlags = Field(default_factory=PluginFlags)
    author: str | None = None
    description: str | None = None
    masters: list[str] = Field(default_factory=list)
    has_header: bool = False
    has_issues: bool = False
    issue_count: int = 0


class LoadOrderStats(BaseModel):
    total_plugins: int = 0
    esm_count: int = 0
    esp_count: int = 0
    esl_count: int = 0
    total_issues: int = 0
    error_count: int = 0
    warning_count: int = 0
    plugins_with_issues: int = 0
    missing_masters: int = 0
    wrong_order_count: int = 0
    duplicate_count: int = 0


class LoadOrderAnalysis(BaseModel):
    plugins: list[PluginInfo]
    issues: list[LoadOrderIssue]
    stats: LoadOrderStats
    dependency_graph: dict[str, list[str]]
