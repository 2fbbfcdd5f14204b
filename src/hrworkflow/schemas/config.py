"""Pydantic configuration schema for YAML input."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError


class EngineConfig(BaseModel):
    allow_backward: bool | None = None
    allow_skip: bool | None = None
    default_template_id: str | None = None
    actor: str | None = None


class DispatchConfig(BaseModel):
    mode: Literal["sync", "background"] | None = None
    max_attempts: int | None = Field(default=None, ge=1, le=10)
    backoff_seconds: float | None = Field(default=None, ge=0)
    timeout_seconds: float | None = Field(default=None, gt=0)
    max_workers: int | None = Field(default=None, ge=1)


class RecordServiceConfig(BaseModel):
    endpoint: str | None = None
    api_key: str | None = None
    timeout_seconds: float = 10.0


class AppConfig(BaseModel):
    engine: EngineConfig = Field(default_factory=EngineConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    templates: list[dict[str, Any]] = Field(default_factory=list)
    record_service: RecordServiceConfig | None = None

    def to_settings(self) -> dict[str, Any]:
        settings: dict[str, Any] = {}
        engine_settings = self.engine.model_dump(exclude_none=True)
        if engine_settings:
            settings["engine"] = engine_settings
        dispatch_settings = self.dispatch.model_dump(exclude_none=True)
        if dispatch_settings:
            settings["dispatch"] = dispatch_settings
        if self.templates:
            settings["templates"] = list(self.templates)
        if self.record_service and self.record_service.endpoint:
            settings["record_service"] = self.record_service.model_dump()
        return settings


def load_config(raw: Any) -> AppConfig:
    if not isinstance(raw, dict):
        raise ValidationError.from_exception_data(
            "AppConfig",
            [{"type": "dict_type", "loc": ("config",), "input": raw}],
        )
    return AppConfig.model_validate(raw)
