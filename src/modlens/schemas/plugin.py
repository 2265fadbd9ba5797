"""Schemas for decoded plugin headers."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class PluginType(StrEnum):
    ESM = "ESM"
    ESP = "ESP"
    ESL = "ESL"


class PluginFlags(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_master: bool = False
    is_light: bool = False
    is_localized: bool = False


class MasterFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    size: int = 0


class PluginHeader(BaseModel):
    """Header of a single plugin file, as declared by its TES4 record.

    ``masters`` keeps declaration order and any duplicates verbatim.
    """

    model_config = ConfigDict(frozen=True)

    filename: str
    plugin_type: PluginType
    flags: PluginFlags
    masters: tuple[MasterFile, ...] = ()
    author: str | None = None
    description: str | None = None
    form_version: int = 0
    num_records: int = 0

    @property
    def master_names(self) -> list[str]:
        return [m.filename for m in self.masters]
