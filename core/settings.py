"""
Payment gateway settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so the gateway stub can be tuned
(or swapped) without touching the service configuration.
"""
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, model_validator


class GatewayLatency(BaseModel):
    min_seconds: float = 1.0
    max_seconds: float = 3.0

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.min_seconds < 0 or self.max_seconds < self.min_seconds:
            raise ValueError("gateway latency bounds must satisfy 0 <= min <= max")
        return self


class SimulatedGatewaySettings(BaseModel):
    charge_success_rate: float = Field(default=0.90, ge=0.0, le=1.0)
    refund_success_rate: float = Field(default=0.95, ge=0.0, le=1.0)
    latency: GatewayLatency = Field(default_factory=GatewayLatency)
    seed: int | None = None


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="simulated", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    # 单次网关调用的超时（秒），超时按一次失败尝试处理
    request_timeout: float = Field(default=30.0, gt=0)
    simulated: SimulatedGatewaySettings = Field(default_factory=SimulatedGatewaySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
