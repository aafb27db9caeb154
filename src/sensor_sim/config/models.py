from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PositiveInt, model_validator

# Config models map the simulator file (YAML or JSON) to typed structures.


class DataSourceConfig(BaseModel):
    # One data source descriptor; extra keys are left for custom drivers.
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    filename: str = Field(min_length=1)
    filetype: str = Field(min_length=1)
    sample_rate: float | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("sample_rate", "sampleRate"),
    )
    chunk_size: PositiveInt | None = Field(
        default=None,
        validation_alias=AliasChoices("chunk_size", "chunkSize"),
    )
    decoder: str | None = None


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    sink: Literal["stderr", "jsonl"] = "stderr"
    path: str | None = None
    level: Literal["debug", "info", "warning", "error"] = "info"

    @model_validator(mode="after")
    def _require_path(self) -> LoggingConfig:
        # The jsonl sink needs a target file; refusing here avoids a silent default.
        if self.sink == "jsonl" and not self.path:
            raise ValueError("logging.path is required when sink is 'jsonl'")
        return self


class MergeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    buffer_warn_threshold: PositiveInt | None = None


class SimulatorConfig(BaseModel):
    # Top-level typed view of the simulator configuration.
    model_config = ConfigDict(extra="forbid", populate_by_name=True)
    socket: str = Field(default="/tmp/sensorSim.sock", min_length=1)
    driver_dir: str | None = Field(
        default=None,
        validation_alias=AliasChoices("driver_dir", "driverDir"),
    )
    data_sources: list[DataSourceConfig] = Field(
        min_length=1,
        validation_alias=AliasChoices("data_sources", "dataSources"),
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
