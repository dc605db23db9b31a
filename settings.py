"""
settings.py — YAML settings loader. Produces one immutable JobSettings per run.
"""
import logging
import os
from types import MappingProxyType
from typing import Any, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError, field_validator

from errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_TIMEOUT_S = 20.0


class FieldWidths(BaseModel):
    """Fixed column widths of the report tables."""

    model_config = ConfigDict(frozen=True)

    idx: StrictInt = Field(gt=0)
    cnt: StrictInt = Field(gt=0)
    name: StrictInt = Field(gt=0)
    type: StrictInt = Field(gt=0)
    author: StrictInt = Field(gt=0)
    title: StrictInt = Field(gt=0)


class FeedSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: StrictStr
    page_size: StrictInt = Field(default=DEFAULT_PAGE_SIZE, gt=0)
    timeout_s: float = Field(default=DEFAULT_TIMEOUT_S, gt=0)


class PublishSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: StrictStr
    author: StrictStr
    parent_permlink: StrictStr
    permlink_prefix: StrictStr
    posting_key_env: StrictStr = "REPORT_POSTING_KEY"
    url_base: StrictStr = ""
    json_metadata: Mapping[str, Any] = Field(default_factory=dict)
    timeout_s: float = Field(default=DEFAULT_TIMEOUT_S, gt=0)

    @field_validator("json_metadata")
    @classmethod
    def freeze_metadata(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(v))


class AuditSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    db_path: StrictStr
    collection: StrictStr


class JobSettings(BaseModel):
    """Everything one run needs; passed explicitly to each stage."""

    model_config = ConfigDict(frozen=True)

    days_before: StrictInt = Field(ge=0)
    count: StrictInt = Field(ge=0)
    decimal: float = Field(gt=0)
    title: StrictStr
    body_template: StrictStr
    widths: FieldWidths
    feed: FeedSettings
    publish: PublishSettings
    audit: AuditSettings
    currency: StrictStr = "$"
    reports_dir: StrictStr = "reports"
    log_level: StrictStr = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"log level must be one of {sorted(valid)}, got '{v}'")
        return v.upper()


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"'{loc}': {err['msg']}")
    return "; ".join(parts)


def _resolve(base_dir: str, path: str) -> str:
    return path if os.path.isabs(path) else os.path.join(base_dir, path)


def parse_settings(raw: dict, base_dir: str = ".") -> JobSettings:
    """Validate a raw settings mapping; relative paths resolve against base_dir."""
    if not isinstance(raw, dict):
        raise ConfigError("settings: top level must be a mapping")
    try:
        settings = JobSettings.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"settings: {_describe(exc)}") from exc

    return settings.model_copy(update={
        "body_template": _resolve(base_dir, settings.body_template),
        "reports_dir": _resolve(base_dir, settings.reports_dir),
        "audit": settings.audit.model_copy(
            update={"db_path": _resolve(base_dir, settings.audit.db_path)}
        ),
    })


def load_settings(path: str, overrides: Optional[dict] = None) -> JobSettings:
    """Read the YAML settings file; overrides win over the file's top-level keys."""
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"settings: cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"settings: invalid YAML in {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"settings: {path} must contain a mapping")
    if overrides:
        raw = {**raw, **{k: v for k, v in overrides.items() if v is not None}}

    settings = parse_settings(raw, base_dir=os.path.dirname(os.path.abspath(path)))
    logger.debug("Loaded settings from %s", path)
    return settings


def load_template(settings: JobSettings) -> str:
    try:
        with open(settings.body_template, encoding="utf-8") as f:
            return f.read()
    except OSError as exc:
        raise ConfigError(f"body template: cannot read {settings.body_template}: {exc}") from exc
