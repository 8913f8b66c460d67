"""
Config loader for sigmagpt.
Reads config.yaml once at startup. All other modules import from here.

${ENV_VAR} references inside the YAML are resolved from the environment
(.env is loaded first), and a handful of plain environment variables
(PORT, NODE_ENV, OPENAI_API_KEY, ...) override the file so the server can
run with no config file at all.
"""

import copy
import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv()

_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

_config: dict | None = None

DEFAULTS: dict = {
    "server": {"host": "0.0.0.0", "port": 3001},
    "environment": "development",
    "cors": {
        "dev_origins": ["http://localhost:3000", "http://localhost:3003"],
        "allowed_origins": [],
    },
    "provider": {
        "name": "",
        "use_puter": False,
        "openai": {
            "api_key": "",
            "url": "https://api.openai.com",
            "model": "gpt-3.5-turbo",
            "max_tokens": 1000,
            "temperature": 0.7,
            "timeout": 120,
        },
        "gemini": {
            "api_key": "",
            "url": "https://generativelanguage.googleapis.com",
            "model": "gemini-1.5-flash",
            "timeout": 120,
        },
        "puter": {
            "auth_token": "",
            "url": "https://api.puter.com",
            "model": "gpt-4o-mini",
            "timeout": 60,
        },
        "drip": {"min_delay": 0.03, "max_delay": 0.07},
    },
    "streaming": {"timeout": 45, "queue_size": 64},
    "logging": {"level": "INFO", "file": ""},
}


def _resolve_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with actual environment variable values."""
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, "")
    return re.sub(r"\$\{(\w+)\}", replacer, value)


def _walk_and_resolve(obj):
    """Recursively resolve env vars in all string values."""
    if isinstance(obj, dict):
        return {k: _walk_and_resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_walk_and_resolve(v) for v in obj]
    elif isinstance(obj, str):
        return _resolve_env_vars(obj)
    return obj


def _merge(base: dict, override: dict) -> dict:
    """Deep-merge override onto base. Neither argument is modified."""
    out = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def _truthy(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(cfg: dict, env=None) -> dict:
    """Plain environment variables win over config.yaml."""
    env = os.environ if env is None else env
    provider = cfg["provider"]

    if env.get("PORT"):
        cfg["server"]["port"] = int(env["PORT"])
    if env.get("HOST"):
        cfg["server"]["host"] = env["HOST"]

    environment = env.get("SIGMAGPT_ENV") or env.get("NODE_ENV")
    if environment:
        cfg["environment"] = environment

    openai_key = env.get("OPENAI_API_KEY") or env.get("OPEN_AI_KEY")
    if openai_key:
        provider["openai"]["api_key"] = openai_key
    if env.get("GEMINI_API_KEY"):
        provider["gemini"]["api_key"] = env["GEMINI_API_KEY"]
    if env.get("PUTER_AUTH_TOKEN"):
        provider["puter"]["auth_token"] = env["PUTER_AUTH_TOKEN"]
    if env.get("USE_PUTER"):
        provider["use_puter"] = _truthy(env["USE_PUTER"])
    if env.get("AI_PROVIDER"):
        provider["name"] = env["AI_PROVIDER"].strip().lower()

    provider["use_puter"] = _truthy(provider.get("use_puter", False))
    return cfg


def build_config(raw: dict | None = None, env=None) -> dict:
    """Layer defaults, a raw config mapping and the environment into one dict."""
    cfg = _merge(DEFAULTS, _walk_and_resolve(raw or {}))
    return _apply_env_overrides(cfg, env)


def load_config(path: Path | None = None, reload: bool = False) -> dict:
    """Load and cache config from YAML file. A missing file means defaults."""
    global _config
    if _config is not None and not reload:
        return _config

    env_path = os.environ.get("SIGMAGPT_CONFIG")
    config_path = path or (Path(env_path) if env_path else _CONFIG_PATH)

    raw = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

    _config = build_config(raw)
    return _config


def get_config() -> dict:
    """Return cached base config, loading if necessary."""
    if _config is None:
        return load_config()
    return _config


def is_production(cfg: dict) -> bool:
    return str(cfg.get("environment", "")).lower() == "production"
