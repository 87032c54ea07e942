"""
Tests for principal canonicalization and pod location helpers.
"""
import pytest

from podshare.identity.principal import (
    data_namespace, display_name, is_valid_principal, log_namespace, normalize,
    outbox_url, permission_log_url, profile_document_url, same_principal,
    storage_root
)


class TestNormalize:

    @pytest.mark.parametrize("raw", [
        "https://alice.example/profile/card#me",
        "https://alice.example/profile/card",
        "https://alice.example/profile/card/",
        "https://alice.example/",
        "https://alice.example",
        "HTTPS://Alice.Example/profile/card#me",
    ])
    def test_variants_collapse(self, raw):
        assert normalize(raw) == "https://alice.example/profile/card#me"

    def test_idempotent(self):
        once = normalize("https://Bob.example/people/bob/")
        assert normalize(once) == once
        assert once == "https://bob.example/people/bob/profile/card#me"

    def test_path_case_is_kept(self):
        assert normalize("https://pod.example/Alice/") == "https://pod.example/Alice/profile/card#me"


class TestValidity:

    def test_valid_principal(self):
        assert is_valid_principal("https://alice.example/profile/card#me")

    @pytest.mark.parametrize("value", [
        None,
        "",
        "https://alice.example/profile/card",
        "ftp://alice.example/profile/card#me",
        "alice",
    ])
    def test_invalid_principal(self, value):
        assert not is_valid_principal(value)

    def test_same_principal_uses_canonical_form(self):
        assert same_principal("https://alice.example/", "https://ALICE.example/profile/card#me")
        assert not same_principal("https://alice.example/", "https://bob.example/")
        assert not same_principal(None, "https://alice.example/")


class TestLocations:

    def test_storage_root(self):
        assert storage_root("https://alice.example/profile/card#me") == "https://alice.example/"

    def test_log_locations(self):
        webid = "https://alice.example/profile/card#me"
        assert permission_log_url(webid) == "https://alice.example/solidtasks/logs/permissions-log.ttl"
        assert log_namespace(webid) == "https://alice.example/log#"
        assert data_namespace(webid) == "https://alice.example/data#"
        assert outbox_url(webid) == "https://alice.example/solidtasks/outbox/"

    def test_profile_document_drops_fragment(self):
        assert profile_document_url("https://bob.example/profile/card#me") == "https://bob.example/profile/card"

    def test_display_name(self):
        assert display_name("https://alice-smith.example/profile/card#me") == "alice smith"
