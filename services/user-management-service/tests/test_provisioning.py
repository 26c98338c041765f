from __future__ import annotations

import pytest

from conftest import T0
from user_management.domain.contracts import SignupInput
from user_management.domain.provisioning import AccountProvisioner
from user_management.errors import AccountExists, InvalidArgument, WeakCredential


@pytest.fixture
def provisioner(store, credential, settings, clock):
    return AccountProvisioner(store, credential, settings, clock=clock)


def test_signup_creates_unconfirmed_participant_with_default_profile(provisioner, store, credential):
    session = provisioner.provision("t1", "a@x.com", "Str0ngP@ss!", "de", False)

    assert session.tenant_id == "t1"
    assert session.confirmed is False
    assert session.roles == ["PARTICIPANT"]
    assert session.display_identifier == ""
    assert session.preferred_language == "de"
    assert [profile.nickname for profile in session.profiles] == ["a@x.com"]
    assert session.selected_profile.nickname == "a@x.com"

    record = store.stored("t1", session.user_id)
    assert record.account.account_id == "a@x.com"
    assert record.account.confirmed_at == 0
    assert record.timestamps.created_at == T0
    assert record.profiles[0].consent_confirmed_at == T0
    assert record.profiles[0].avatar_id == "default"
    assert record.refresh_tokens == []
    assert credential.verify(record.account.password_hash, "Str0ngP@ss!")
    assert [(c.email, c.confirmed_at) for c in record.contact_infos] == [("a@x.com", 0)]
    assert record.contact_preferences.subscribed_to_newsletter is False
    assert record.contact_preferences.send_newsletter_to == []


def test_newsletter_targets_signup_contact(provisioner, store):
    session = provisioner.provision("t1", "a@x.com", "Str0ngP@ss!", "en", True)

    record = store.stored("t1", session.user_id)
    assert record.contact_preferences.subscribed_to_newsletter is True
    assert record.contact_preferences.send_newsletter_to == [record.contact_infos[0].id]


@pytest.mark.parametrize("identifier", ["", "not-an-email", "a@", "@x.com", "a b@x.com"])
def test_malformed_identifier_is_rejected_before_persistence(provisioner, store, identifier):
    with pytest.raises(InvalidArgument) as excinfo:
        provisioner.provision("t1", identifier, "Str0ngP@ss!")
    assert not isinstance(excinfo.value, WeakCredential)
    assert store.calls == []


def test_weak_password_is_rejected_before_hashing(provisioner, store, credential, monkeypatch):
    monkeypatch.setattr(credential, "hash", lambda _: pytest.fail("hashed a rejected password"))

    with pytest.raises(WeakCredential):
        provisioner.provision("t1", "a@x.com", "password")
    assert store.calls == []


def test_identifier_is_normalised(provisioner, store):
    session = provisioner.provision("t1", "  Mixed.Case@X.com ", "Str0ngP@ss!")

    assert store.stored("t1", session.user_id).account.account_id == "mixed.case@x.com"


def test_duplicate_identifier_within_tenant(provisioner, store):
    provisioner.provision("t1", "a@x.com", "Str0ngP@ss!")

    with pytest.raises(AccountExists):
        provisioner.provision("t1", "A@x.com", "An0therP@ss")
    provisioner.provision("t2", "a@x.com", "Str0ngP@ss!")
    assert store.count("t1") == 1
    assert store.count("t2") == 1


def test_provision_from_signup_input_uses_default_tenant(provisioner):
    session = provisioner.provision_from(
        SignupInput(tenant_id="", email="a@x.com", password="Str0ngP@ss!", wants_newsletter=True)
    )

    assert session.tenant_id == "default"
