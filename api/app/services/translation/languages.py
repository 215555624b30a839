"""Supported language codes and tag normalization."""

import re
from typing import Dict, Optional

# Canonical language codes accepted by the service, in preference order
SUPPORTED_LANGUAGES: Dict[str, str] = {
    "zh-HK": "Traditional Chinese (Hong Kong)",
    "zh-CN": "Simplified Chinese",
    "en": "English",
}

# Regional / script tags reported by backends, lower-cased
_TAG_ALIASES: Dict[str, str] = {
    "zh-hk": "zh-HK",
    "zh-tw": "zh-HK",
    "zh-mo": "zh-HK",
    "zh-hant": "zh-HK",
    "zh-hant-hk": "zh-HK",
    "zh-hant-tw": "zh-HK",
    "zh": "zh-CN",
    "zh-cn": "zh-CN",
    "zh-sg": "zh-CN",
    "zh-hans": "zh-CN",
    "zh-hans-cn": "zh-CN",
    "en": "en",
}

_CJK_PATTERN = re.compile(r"[一-鿿]")


def is_supported(code: str) -> bool:
    return code in SUPPORTED_LANGUAGES


def is_chinese_script(code: str) -> bool:
    """True for languages written in Chinese characters (zh-*)."""
    return code.lower().startswith("zh")


def contains_cjk(text: str) -> bool:
    return bool(_CJK_PATTERN.search(text))


def normalize_language_tag(tag: str) -> Optional[str]:
    """Map a backend language tag onto a canonical code.

    Collapses regional Chinese variants (``zh-TW``, ``zh-Hant`` ...) onto
    ``zh-HK`` / ``zh-CN`` and any English variant onto ``en``.

    Args:
        tag: Tag as reported by a provider, e.g. ``"zh-TW"`` or ``"EN-GB"``

    Returns:
        Canonical code, or None when the tag has no supported counterpart
    """
    normalized = (tag or "").strip().replace("_", "-").lower()
    if not normalized:
        return None
    if normalized in _TAG_ALIASES:
        return _TAG_ALIASES[normalized]
    if normalized.startswith("en-"):
        return "en"
    return None
