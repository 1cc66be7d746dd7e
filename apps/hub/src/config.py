from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Load apps/hub/.env and accept env keys in any case
    _env_file = Path(__file__).resolve().parent.parent / ".env"
    model_config = SettingsConfigDict(env_file=str(_env_file), extra="ignore", case_sensitive=False)

    app_name: str = "Smart Irrigation Hub"
    app_version: str = "0.1.0"
    debug: bool = True
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    port: int = 8000

    # Weather API
    openweather_api_key: str | None = Field(default=None, description="OpenWeatherMap API key (appid).")
    weather_base_url: str = Field(
        default="https://api.openweathermap.org/data/2.5",
        description="Base URL for the OpenWeatherMap current-weather API",
    )
    weather_request_timeout: float = Field(default=5.0, ge=0.1, description="Timeout in seconds for weather HTTP calls")
    weather_cache_ttl: int = Field(default=300, ge=0, description="Cache duration (seconds) for weather responses")
    weather_relay_fallback: bool = Field(
        default=True,
        description="Serve simulated weather from the relay endpoints when the upstream provider fails.",
    )

    # Tank
    tank_empty_threshold: float = Field(default=20.0, ge=0.0, le=100.0, description="Tank level (%) at or below which the tank is empty.")
    tank_full_threshold: float = Field(default=95.0, ge=0.0, le=100.0, description="Tank level (%) at or above which the tank is full.")
    tank_initial_level: float = Field(default=75.0, ge=0.0, le=100.0)

    # Simulated soil sensor
    sensor_initial_moisture: float = Field(default=45.0, ge=0.0, le=100.0)
    sensor_initial_temperature: float = Field(default=28.0, ge=20.0, le=40.0)

    # Periodic tasks
    simulation_enabled: bool = Field(
        default=False,
        description="Run the sensor, tank and auto-evaluation loops in the background.",
    )
    simulation_seed: int | None = Field(default=None, description="Optional RNG seed for the simulators.")
    sensor_interval_seconds: float = Field(default=3.0, gt=0.0)
    pump_tick_seconds: float = Field(default=1.0, gt=0.0)
    pump_countdown_enabled: bool = Field(
        default=True,
        description="Count running pump cycles down in the background; disable to drive ticks by hand.",
    )
    tank_interval_seconds: float = Field(default=5.0, gt=0.0)
    auto_evaluate_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Spacing between automatic watering evaluations. Set to 0 to disable auto mode.",
    )
    auto_soil_type: str = Field(default="loamy", description="Soil type used by the background auto-evaluation.")

    # Profile (read-only inputs)
    default_region: str = Field(default="nagpur")
    moisture_threshold: float = Field(default=60.0, ge=30.0, le=80.0, description="Water when soil moisture drops below this level.")
    notifications: bool = Field(default=True, description="Deliver alert notifications to external channels.")

    # History
    activity_history_limit: int = Field(
        default=500,
        ge=10,
        description="Max number of activity entries retained in memory before the oldest are evicted.",
    )
    activity_event_log: str | None = Field(
        default=None,
        description="Optional path to persist activity entries as JSONL. Leave blank to disable persistence.",
    )
    alerts_history_limit: int = Field(
        default=200,
        ge=50,
        description="Max number of in-memory alert events retained for diagnostics.",
    )
    alerts_event_log: str | None = Field(
        default=None,
        description="Optional path to persist alert events as JSONL. Leave blank to disable persistence.",
    )
    alerts_webhook_url: str | None = Field(
        default=None,
        description="Optional webhook endpoint (e.g., Slack) that receives alert payloads.",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def normalize_cors(cls, v):
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                import json
                return json.loads(s)
            if s in ("", "*"):
                return ["*"]
            return [p.strip() for p in s.split(",")]
        return v

    @field_validator("default_region", "auto_soil_type", mode="before")
    @classmethod
    def normalize_identifier(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

settings = Settings()
