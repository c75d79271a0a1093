"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)

from healthwatch.core.exceptions import InvalidConfigError
from healthwatch.core.types import (
    Aggregate,
    ComparisonOperator,
    Criticality,
    Severity,
)

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class _Static(BaseModel):
    """Configuration objects are read-only once loaded."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class LoggingConfig(_Static):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class EngineConfig(_Static):
    """Engine-wide tunables."""

    evaluation_interval_secs: float = Field(default=60.0, gt=0)
    retention_points: int = Field(default=1000, gt=0)
    retention_secs: float | None = Field(default=None, gt=0)
    send_timeout_secs: float = Field(default=10.0, gt=0)
    max_alert_history: int = Field(default=10_000, gt=0)


class HealthCheckEndpoint(_Static):
    """A probed endpoint or third-party dependency."""

    name: str
    url: str
    method: Literal["GET", "POST", "HEAD"] = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = None
    expected_status_code: int = 200
    expected_response_time_ms: float = Field(default=1000.0, gt=0)
    interval_secs: float = Field(default=60.0, gt=0)
    timeout_secs: float = Field(default=10.0, gt=0)
    retries: int = Field(default=0, ge=0)
    criticality: Criticality = Criticality.HIGH

    @field_validator("name", "url")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @model_validator(mode="after")
    def _fits_interval(self) -> HealthCheckEndpoint:
        budget = self.timeout_secs * (self.retries + 1)
        if budget > self.interval_secs:
            raise ValueError(
                f"timeout_secs * (retries + 1) = {budget:g}s exceeds "
                f"interval_secs = {self.interval_secs:g}s"
            )
        return self


class SyntheticStep(_Static):
    """One request in a scripted user journey."""

    name: str = ""
    url: str
    method: Literal["GET", "POST", "HEAD"] = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = None
    expected_status_code: int = 200
    expected_response_time_ms: float | None = Field(default=None, gt=0)
    timeout_secs: float = Field(default=10.0, gt=0)


class SyntheticScenario(_Static):
    """Ordered steps run together; any failing step fails the scenario."""

    name: str
    interval_secs: float = Field(
        default=300.0,
        gt=0,
        validation_alias=AliasChoices("interval_secs", "frequency"),
    )
    steps: list[SyntheticStep] = Field(min_length=1)
    severity: Severity = Severity.WARNING
    enabled: bool = True

    @field_validator("name")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @model_validator(mode="after")
    def _fits_interval(self) -> SyntheticScenario:
        budget = sum(step.timeout_secs for step in self.steps)
        if budget > self.interval_secs:
            raise ValueError(
                f"step timeouts add up to {budget:g}s, more than "
                f"interval_secs = {self.interval_secs:g}s"
            )
        return self

    def step_endpoint(self, index: int) -> HealthCheckEndpoint:
        """The step at *index* in the shape a Probe accepts."""
        step = self.steps[index]
        return HealthCheckEndpoint(
            name=f"{self.name}:{step.name or index + 1}",
            url=step.url,
            method=step.method,
            headers=step.headers,
            body=step.body,
            expected_status_code=step.expected_status_code,
            interval_secs=self.interval_secs,
            timeout_secs=step.timeout_secs,
        )


class ErrorTrackingConfig(_Static):
    """Application error intake."""

    enabled: bool = True
    notify_new_errors: bool = True
    severity: Severity = Severity.WARNING


class AlertRule(_Static):
    """Threshold rule evaluated against one metric."""

    id: str
    name: str = ""
    description: str = ""
    metric: str
    labels: dict[str, str] = Field(default_factory=dict)
    operator: ComparisonOperator = Field(
        default=ComparisonOperator.GT,
        validation_alias=AliasChoices("operator", "condition"),
    )
    threshold: float
    duration_secs: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("duration_secs", "duration"),
    )
    severity: Severity = Severity.WARNING
    aggregate: Aggregate = Aggregate.LAST
    channels: list[str] = Field(default_factory=list)
    enabled: bool = True

    @field_validator("id", "metric")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v


class EscalationStep(_Static):
    """One timed re-notification."""

    delay_minutes: float = Field(ge=0)
    channels: list[str] = Field(default_factory=list)
    assignees: list[str] = Field(default_factory=list)


class EscalationPolicy(_Static):
    """Ordered escalation steps keyed to severities and/or rules."""

    id: str
    name: str = ""
    enabled: bool = True
    severities: list[Severity] = Field(default_factory=list)
    rule_ids: list[str] = Field(default_factory=list)
    steps: list[EscalationStep] = Field(
        default_factory=list,
        validation_alias=AliasChoices("steps", "rules"),
    )

    def applies_to(self, rule_id: str, severity: Severity) -> bool:
        """Whether an alert from *rule_id* at *severity* uses this policy."""
        if not self.enabled:
            return False
        if self.severities and severity not in self.severities:
            return False
        if self.rule_ids and rule_id not in self.rule_ids:
            return False
        return True


class SilencingRule(_Static):
    """A silence applied at engine start."""

    id: str
    name: str = ""
    pattern: str
    duration_secs: float = Field(gt=0)
    reason: str = ""
    enabled: bool = True


# ── Notification channels (tagged on ``type``) ──────────────────


class _ChannelBase(_Static):
    name: str
    enabled: bool = True


class EmailChannelConfig(_ChannelBase):
    """Email delivered through an HTTP mail relay."""

    type: Literal["email"] = "email"
    relay_url: str
    sender: str = "alerts@localhost"
    recipients: list[str] = Field(min_length=1)
    api_key: SecretStr = SecretStr("")


class ChatChannelConfig(_ChannelBase):
    """Chat incoming-webhook (Slack-compatible payload)."""

    type: Literal["chat"] = "chat"
    webhook_url: SecretStr
    channel: str = ""


class PagerChannelConfig(_ChannelBase):
    """Pager service using the PagerDuty Events v2 payload."""

    type: Literal["pager"] = "pager"
    integration_key: SecretStr
    events_url: str = "https://events.pagerduty.com/v2/enqueue"


class SmsChannelConfig(_ChannelBase):
    """SMS gateway accepting JSON posts."""

    type: Literal["sms"] = "sms"
    gateway_url: str
    numbers: list[str] = Field(min_length=1)
    api_key: SecretStr = SecretStr("")


class WebhookChannelConfig(_ChannelBase):
    """Generic JSON webhook."""

    type: Literal["webhook"] = "webhook"
    url: SecretStr
    headers: dict[str, str] = Field(default_factory=dict)


ChannelConfig = Annotated[
    EmailChannelConfig
    | ChatChannelConfig
    | PagerChannelConfig
    | SmsChannelConfig
    | WebhookChannelConfig,
    Field(discriminator="type"),
]


class CollectorsConfig(_Static):
    """Built-in metric collectors."""

    system_metrics: bool = False
    interval_secs: float = Field(default=60.0, gt=0)
    host_label: str = "localhost"
    timeout_secs: float = Field(default=30.0, gt=0)


class ApiConfig(_Static):
    """Read-only JSON query API."""

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8080
    username: str | None = None
    password: SecretStr | None = None


class Settings(_Static):
    """Root settings container."""

    logging: LoggingConfig = LoggingConfig()
    engine: EngineConfig = EngineConfig()
    health_checks: list[HealthCheckEndpoint] = Field(default_factory=list)
    synthetic_scenarios: list[SyntheticScenario] = Field(default_factory=list)
    error_tracking: ErrorTrackingConfig = ErrorTrackingConfig()
    rules: list[AlertRule] = Field(default_factory=list)
    escalation_policies: list[EscalationPolicy] = Field(default_factory=list)
    channels: list[ChannelConfig] = Field(default_factory=list)
    silences: list[SilencingRule] = Field(default_factory=list)
    collectors: CollectorsConfig = CollectorsConfig()
    api: ApiConfig = ApiConfig()

    @model_validator(mode="after")
    def _check_references(self) -> Settings:
        _require_unique("health check name", [e.name for e in self.health_checks])
        _require_unique("synthetic scenario name", [s.name for s in self.synthetic_scenarios])
        _require_unique("rule id", [r.id for r in self.rules])
        _require_unique("escalation policy id", [p.id for p in self.escalation_policies])
        _require_unique("channel name", [c.name for c in self.channels])

        known = {c.name for c in self.channels} | {c.type for c in self.channels}
        for rule in self.rules:
            missing = [ch for ch in rule.channels if ch not in known]
            if missing:
                raise ValueError(f"rule {rule.id!r} references unknown channels {missing}")
        for policy in self.escalation_policies:
            for step in policy.steps:
                missing = [ch for ch in step.channels if ch not in known]
                if missing:
                    raise ValueError(
                        f"escalation policy {policy.id!r} references unknown channels {missing}"
                    )
        return self


def _require_unique(what: str, values: list[str]) -> None:
    seen: set[str] = set()
    for v in values:
        if v in seen:
            raise ValueError(f"duplicate {what}: {v!r}")
        seen.add(v)


def parse_settings(data: dict[str, Any]) -> Settings:
    """Validate a raw mapping into Settings.

    Raises:
        InvalidConfigError: if the mapping does not describe a valid config.
    """
    try:
        return Settings(**data)
    except ValidationError as exc:
        raise InvalidConfigError(str(exc)) from exc


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.

    Raises:
        InvalidConfigError: on malformed YAML or a config that fails validation.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            try:
                raw = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise InvalidConfigError(f"{config_path}: {exc}") from exc
            if isinstance(raw, dict):
                data = raw
            elif raw is not None:
                raise InvalidConfigError(f"{config_path}: top level must be a mapping")

    _settings = parse_settings(data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
