from dataclasses import dataclass


@dataclass
class AppConfig:
    name: str
    secret_key: str
    currency: str
    default_plan_name: str


@dataclass
class JwtConfig:
    secret_key: str
    access_token_days: int


@dataclass
class TelebirrConfig:
    enabled: bool
    api_base_url: str
    app_key: str
    app_secret: str
    short_code: str
    notify_url: str
    return_url: str
    public_key: str
    private_key: str
    timeout: int = 30


@dataclass
class TraccarConfig:
    enabled: bool
    api_url: str
    username: str
    password: str
    timeout: int = 15


@dataclass
class SchedulerConfig:
    timezone: str
    expiry_warning_days: int


@dataclass
class LoggingConfig:
    level: str
    directory: str
