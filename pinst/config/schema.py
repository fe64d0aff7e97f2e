from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


# Per-instance attribute: a plain list (default value) or {time code: list}.
SampledValue = Union[Dict[float, List[Any]], List[Any]]


class InstancerFileModel(BaseModel):
    path: str
    prototypes: List[str] = Field(default_factory=list)
    protoIndices: Optional[SampledValue] = None
    positions: Optional[SampledValue] = None
    orientations: Optional[SampledValue] = None
    scales: Optional[SampledValue] = None
    velocities: Optional[SampledValue] = None
    angularVelocities: Optional[SampledValue] = None
    invisibleIds: Optional[List[int]] = None
    timeCodesPerSecond: float = 24.0

    @field_validator("path")
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("Instancer path must be absolute (start with '/')")
        return value

    @field_validator("prototypes")
    @classmethod
    def _absolute_prototypes(cls, value: List[str]) -> List[str]:
        for proto in value:
            if not proto.startswith("/"):
                raise ValueError(f"Prototype path '{proto}' must be absolute")
        return value


class InstancerSourceConfig(BaseModel):
    path: Path


class TimeConfig(BaseModel):
    current_time: float = 1.0
    motion_sample_times: List[float] = Field(default_factory=lambda: [0.0])
    motion_backward: bool = False

    @field_validator("motion_sample_times")
    @classmethod
    def _ordered_unique(cls, value: List[float]) -> List[float]:
        if len(set(value)) != len(value):
            raise ValueError("motion_sample_times must not contain duplicates")
        return value


class ComputerConfig(BaseModel):
    kind: Literal["reference"] = "reference"


class OutputConfig(BaseModel):
    path: Path
    format: Literal["yaml", "npz"] = "yaml"


class CookConfig(BaseModel):
    instancer: InstancerSourceConfig
    location: str = "/root/world"
    time: TimeConfig = TimeConfig()
    computer: ComputerConfig = ComputerConfig()
    output: OutputConfig

    @model_validator(mode="after")
    def _validate_location(self) -> "CookConfig":
        if not self.location.startswith("/"):
            raise ValueError("location must be an absolute scene graph path")
        suffix = self.output.path.suffix.lower()
        if suffix in {".yaml", ".yml"} and self.output.format != "yaml":
            raise ValueError(f"output path '{self.output.path}' does not match format '{self.output.format}'")
        if suffix == ".npz" and self.output.format != "npz":
            raise ValueError(f"output path '{self.output.path}' does not match format '{self.output.format}'")
        return self


def load_config(path: str | Path) -> CookConfig:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping.")
    cfg = CookConfig.model_validate(data)
    cfg.output.path = (path.parent / cfg.output.path).resolve()
    if not cfg.instancer.path.is_absolute():
        cfg.instancer.path = (path.parent / cfg.instancer.path).resolve()
    return cfg
