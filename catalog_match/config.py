from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .models import DecisionMode


class LibrarySettings(BaseModel):
    roots: List[Path]
    include_extensions: List[str] = Field(default_factory=lambda: [".mp3", ".flac", ".m4a", ".ogg"])
    exclude_patterns: List[str] = Field(default_factory=list)
    exclude_file: Optional[Path] = None

    @field_validator("roots", mode="before")
    @classmethod
    def _expand_roots(cls, values: List[str]) -> List[Path]:
        return [Path(v).expanduser().resolve() for v in values]

    @field_validator("exclude_file", mode="before")
    @classmethod
    def _expand_exclude_file(cls, value: Optional[str | Path]) -> Optional[Path]:
        if value is None:
            return None
        return Path(value).expanduser().resolve()


class ProviderSettings(BaseModel):
    musicbrainz_useragent: str = "catalog-match/0.1 (unknown@example.com)"
    network_retries: int = Field(default=2, ge=0)
    network_retry_backoff_seconds: float = Field(default=0.5, ge=0.0)
    min_request_interval_seconds: float = Field(default=1.1, ge=0.0)
    batch_size: int = Field(default=5, ge=1)
    search_limit: int = Field(default=10, ge=1, le=100)


class MatchingSettings(BaseModel):
    direct_confidence_floor: float = Field(default=0.6, ge=0.0, le=1.0)
    evidence_floor: float = Field(default=0.5, ge=0.0, le=1.0)
    min_acceptable_score: float = Field(default=0.6, ge=0.0, le=1.0)
    year_bonus: float = Field(default=0.3, ge=0.0, le=1.0)
    release_type_epsilon: float = Field(default=0.02, ge=0.0, le=1.0)
    top_n: int = Field(default=5, ge=1)
    max_evidence_albums: int = Field(default=3, ge=1)
    validate_inferred: bool = True
    evaluated_coverage: float = Field(default=0.5, ge=0.0, le=1.0)
    inferred_penalty: float = Field(default=0.75, ge=0.0, le=1.0)


class DecisionSettings(BaseModel):
    mode: DecisionMode = DecisionMode.SMART
    high_confidence_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    low_confidence_floor: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    non_interactive: bool = False

    @field_validator("mode", mode="before")
    @classmethod
    def _lower_mode(cls, value: str | DecisionMode) -> str | DecisionMode:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class EngineSettings(BaseModel):
    worker_concurrency: int = Field(default=1, ge=1)


class Settings(BaseModel):
    library: LibrarySettings
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    decision: DecisionSettings = Field(default_factory=DecisionSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)

    @model_validator(mode="after")
    def _default_low_floor(self) -> "Settings":
        if self.decision.low_confidence_floor is None:
            self.decision.low_confidence_floor = self.matching.min_acceptable_score
        return self

    @classmethod
    def load(cls, path: Path) -> "Settings":
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
        return cls.model_validate(raw)


def find_config(explicit_path: Optional[Path]) -> Path:
    if explicit_path:
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "config.yaml", cwd / "config.yml"):
        if candidate.exists():
            return candidate
    raise FileNotFoundError("Could not find config.yaml - pass --config explicitly.")
