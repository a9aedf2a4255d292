"""Configuration management."""
import os
import yaml
from pathlib import Path

_config = None
CONFIG_DIR = Path(__file__).parent
_DEFAULT_CONFIG = CONFIG_DIR / "default_config.yaml"


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides."""
    global _config

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    # Environment variable overrides
    env_map = {
        "OPSALERT_LOG_LEVEL": ("logging", "level"),
        "OPSALERT_LOG_FILE": ("logging", "file"),
        "OPSALERT_EVAL_INTERVAL": ("alerting", "evaluation_interval_seconds"),
        "OPSALERT_HISTORY_CAPACITY": ("alerting", "history_capacity"),
        "OPSALERT_ENVIRONMENT": ("alerting", "environment"),
        "OPSALERT_DASHBOARD_URL": ("alerting", "dashboard_url"),
        "OPSALERT_RULES_PATH": ("alerting", "rules_path"),
        "OPSALERT_SMTP_HOST": ("email", "smtp_host"),
        "OPSALERT_SMTP_PORT": ("email", "smtp_port"),
    }
    for env_key, config_path in env_map.items():
        val = os.environ.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            try:
                d[config_path[-1]] = int(val)
            except ValueError:
                d[config_path[-1]] = val

    _apply_channel_env(config)
    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def resolve_rules_path(config):
    """Rules path from config; relative paths are taken from the config directory."""
    rules_path = Path(config["alerting"].get("rules_path") or "alert_rules.yaml")
    if not rules_path.is_absolute() and not rules_path.exists():
        rules_path = CONFIG_DIR / rules_path
    return rules_path


def _apply_channel_env(config):
    """Fill channel endpoints from the environment (OPSALERT_ADMIN_EMAIL etc.)."""
    channels = {c.get("id"): c for c in config.get("channels", [])}

    admin_email = os.environ.get("OPSALERT_ADMIN_EMAIL")
    if admin_email and "admin-email" in channels:
        cfg = channels["admin-email"].setdefault("config", {})
        cfg["recipients"] = [a.strip() for a in admin_email.split(",") if a.strip()]
    from_email = os.environ.get("OPSALERT_FROM_EMAIL")
    if from_email and "admin-email" in channels:
        channels["admin-email"].setdefault("config", {})["from_address"] = from_email

    webhook_url = os.environ.get("OPSALERT_WEBHOOK_URL")
    if webhook_url and "ops-webhook" in channels:
        cfg = channels["ops-webhook"].setdefault("config", {})
        cfg["url"] = webhook_url
        auth = os.environ.get("OPSALERT_WEBHOOK_AUTH")
        if auth:
            cfg.setdefault("headers", {})["Authorization"] = auth

    chat_url = os.environ.get("OPSALERT_CHAT_WEBHOOK_URL")
    if chat_url and "chat-alerts" in channels:
        cfg = channels["chat-alerts"].setdefault("config", {})
        cfg["webhook_url"] = chat_url
        chat_channel = os.environ.get("OPSALERT_CHAT_CHANNEL")
        if chat_channel:
            cfg["channel"] = chat_channel


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    """Basic config validation."""
    required_sections = ["alerting", "email", "channels", "escalation", "logging"]
    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    if config["alerting"]["evaluation_interval_seconds"] < 5:
        raise ValueError("evaluation_interval_seconds must be >= 5 seconds")
    if config["alerting"]["history_capacity"] < 1:
        raise ValueError("history_capacity must be >= 1")
