"""
Principal identity helpers.
"""

from .principal import (
    normalize, is_valid_principal, same_principal, storage_root,
    profile_document_url, permission_log_url, log_container_url,
    outbox_url, log_namespace, data_namespace, display_name
)

__all__ = [
    "normalize", "is_valid_principal", "same_principal", "storage_root",
    "profile_document_url", "permission_log_url", "log_container_url",
    "outbox_url", "log_namespace", "data_namespace", "display_name"
]
