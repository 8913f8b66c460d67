"""
Provider backends for SigmaGPT.

Usage:
    from sigmagpt.backends import make_backend
    backend = make_backend(cfg)

The provider is picked once at startup:
    1. provider.name (or AI_PROVIDER) if set and its credential is present
    2. OpenAI if an OpenAI key is configured
    3. Gemini if a Gemini key is configured
    4. Puter, which itself degrades to canned replies
USE_PUTER=true forces Puter only while no OpenAI key is configured.
"""

import logging

from sigmagpt.backends.base import BaseBackend, BackendResponse
from sigmagpt.backends.canned import CannedBackend
from sigmagpt.backends.gemini import GeminiBackend
from sigmagpt.backends.openai_compat import OpenAIBackend
from sigmagpt.backends.puter import PuterBackend

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, type[BaseBackend]] = {
    "openai": OpenAIBackend,
    "gemini": GeminiBackend,
    "puter": PuterBackend,
    "canned": CannedBackend,
}


def select_provider(provider_cfg: dict) -> str:
    """Decide which provider name to use from the provider config block."""
    openai_key = provider_cfg.get("openai", {}).get("api_key", "")
    gemini_key = provider_cfg.get("gemini", {}).get("api_key", "")
    requested = (provider_cfg.get("name") or "").strip().lower()

    if requested:
        if requested not in PROVIDERS:
            logger.warning("Unknown provider '%s', choosing automatically", requested)
        elif requested == "openai" and not openai_key:
            logger.warning("Provider 'openai' requested but no OpenAI API key is set")
        elif requested == "gemini" and not gemini_key:
            logger.warning("Provider 'gemini' requested but no Gemini API key is set")
        else:
            return requested

    if provider_cfg.get("use_puter") and not openai_key:
        return "puter"
    if openai_key:
        return "openai"
    if gemini_key:
        return "gemini"
    return "puter"


def make_backend(cfg: dict) -> BaseBackend:
    """Instantiate the backend chosen by select_provider()."""
    provider_cfg = cfg.get("provider", {})
    drip = provider_cfg.get("drip", {})
    min_delay = drip.get("min_delay", 0.03)
    max_delay = drip.get("max_delay", 0.07)
    name = select_provider(provider_cfg)

    if name == "openai":
        o = provider_cfg.get("openai", {})
        backend = OpenAIBackend(
            url=o.get("url", "https://api.openai.com"),
            api_key=o.get("api_key", ""),
            model=o.get("model", "gpt-3.5-turbo"),
            max_tokens=o.get("max_tokens", 1000),
            temperature=o.get("temperature", 0.7),
            timeout=o.get("timeout", 120),
        )
    elif name == "gemini":
        g = provider_cfg.get("gemini", {})
        backend = GeminiBackend(
            url=g.get("url", "https://generativelanguage.googleapis.com"),
            api_key=g.get("api_key", ""),
            model=g.get("model", "gemini-1.5-flash"),
            timeout=g.get("timeout", 120),
        )
    elif name == "puter":
        p = provider_cfg.get("puter", {})
        backend = PuterBackend(
            url=p.get("url", "https://api.puter.com"),
            auth_token=p.get("auth_token", ""),
            model=p.get("model", "gpt-4o-mini"),
            timeout=p.get("timeout", 60),
            min_delay=min_delay,
            max_delay=max_delay,
        )
    else:
        backend = CannedBackend(min_delay=min_delay, max_delay=max_delay)

    logger.info("AI provider: %s", backend.provider)
    return backend


__all__ = [
    "BaseBackend",
    "BackendResponse",
    "CannedBackend",
    "GeminiBackend",
    "OpenAIBackend",
    "PuterBackend",
    "make_backend",
    "select_provider",
]
