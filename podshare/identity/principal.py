"""
Principal (WebID) canonicalization and pod location helpers.

Every equality check between principals must go through ``normalize``;
comparing raw WebIDs treats ``https://a.example/`` and
``https://a.example/profile/card#me`` as different people.
"""
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from podshare.config import Settings, settings as default_settings


def _profile_parts(cfg: Settings) -> tuple[str, str]:
    """Split the profile document setting into (path, fragment)."""
    path, _, fragment = cfg.PROFILE_DOCUMENT.partition("#")
    return path.strip("/"), fragment


def normalize(principal: str, cfg: Optional[Settings] = None) -> str:
    """
    Canonicalize a principal.

    Strips the fragment and any profile-document path, lower-cases scheme
    and authority, ensures a trailing slash and re-appends the profile
    document. ``normalize(normalize(x)) == normalize(x)``.
    """
    cfg = cfg or default_settings
    profile_path, fragment = _profile_parts(cfg)

    parts = urlsplit(principal.strip())
    path = parts.path
    if profile_path and path.rstrip("/").endswith("/" + profile_path):
        path = path.rstrip("/")[: -len(profile_path)]
    elif profile_path and path.strip("/") == profile_path:
        path = "/"
    if not path.endswith("/"):
        path += "/"

    base = urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))
    return f"{base}{profile_path}#{fragment}" if fragment else f"{base}{profile_path}"


def is_valid_principal(value: Optional[str]) -> bool:
    """http(s) scheme, an authority and a fragment."""
    if not value:
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc) and bool(parts.fragment)


def same_principal(a: Optional[str], b: Optional[str], cfg: Optional[Settings] = None) -> bool:
    if not a or not b:
        return False
    return normalize(a, cfg) == normalize(b, cfg)


def storage_root(principal: str, cfg: Optional[Settings] = None) -> str:
    """Pod root for a principal, always ending in ``/``."""
    cfg = cfg or default_settings
    canonical = normalize(principal, cfg)
    profile_path, fragment = _profile_parts(cfg)
    suffix = f"{profile_path}#{fragment}" if fragment else profile_path
    return canonical[: -len(suffix)] if suffix else canonical


def profile_document_url(principal: str) -> str:
    """The document holding the profile (principal without its fragment)."""
    return principal.split("#", 1)[0]


def permission_log_url(principal: str, cfg: Optional[Settings] = None) -> str:
    cfg = cfg or default_settings
    return f"{storage_root(principal, cfg)}{cfg.LOGS_DIR}{cfg.PERMISSION_LOG_FILE}"


def log_container_url(principal: str, cfg: Optional[Settings] = None) -> str:
    cfg = cfg or default_settings
    return f"{storage_root(principal, cfg)}{cfg.LOGS_DIR}"


def outbox_url(principal: str, cfg: Optional[Settings] = None) -> str:
    cfg = cfg or default_settings
    return f"{storage_root(principal, cfg)}{cfg.OUTBOX_DIR}"


def log_namespace(principal: str, cfg: Optional[Settings] = None) -> str:
    return f"{storage_root(principal, cfg)}log#"


def data_namespace(principal: str, cfg: Optional[Settings] = None) -> str:
    return f"{storage_root(principal, cfg)}data#"


def display_name(principal: str) -> str:
    """Human label taken from the first host label, e.g. ``alice``."""
    host = urlsplit(principal).hostname or ""
    label = host.split(".")[0] if host else ""
    if not label:
        return principal
    return label.replace("-", " ").replace("_", " ")
