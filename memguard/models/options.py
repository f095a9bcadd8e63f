"""Construction options for the pool and its connections."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PoolOptions(BaseModel):
    """Pool population bounds.

    ``min`` connections are kept warm; the pool never holds more than
    ``max`` connections (idle plus outstanding).
    """

    model_config = ConfigDict(frozen=True)

    min: int = Field(default=0, ge=0)
    max: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def _check_bounds(self) -> PoolOptions:
        if self.min > self.max:
            raise ValueError(f"min ({self.min}) must not exceed max ({self.max})")
        return self


class ConnectionOptions(BaseModel):
    """Per-connection behaviour.

    Attributes:
        idle_timeout:     Seconds an idle connection above ``min`` may live.
        evict_on_failure: Destroy a connection on release when its driver
                          reported a failure, instead of reusing it.
        encoding:         Codec used by drivers to turn ``str`` values into
                          bytes and back; ``None`` keeps raw bytes.
        reap_interval:    Seconds between idle sweeps; defaults to half of
                          ``idle_timeout``.
    """

    model_config = ConfigDict(frozen=True)

    idle_timeout: float = Field(default=5.0, gt=0)
    evict_on_failure: bool = False
    encoding: str | None = "utf-8"
    reap_interval: float | None = Field(default=None, gt=0)

    @property
    def effective_reap_interval(self) -> float:
        if self.reap_interval is not None:
            return self.reap_interval
        return self.idle_timeout / 2
