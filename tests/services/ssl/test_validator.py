from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import TestPki, new_key
from hostcert.services.ssl.errors import CredentialMissing, ValidationFailed
from hostcert.services.ssl.models import TrustBundle
from hostcert.services.ssl.validator import TrustContextValidator


def _bundle(test_pki, revoked=()):
    return TrustBundle(cacerts=tuple(test_pki.cacerts), crls=tuple(test_pki.crls(revoked)))


def test_chain_is_ordered_leaf_to_root(store, test_pki):
    key = new_key()
    leaf = test_pki.leaf("agent01", key)

    context = TrustContextValidator(store).create_context(bundle=_bundle(test_pki), private_key=key, client_cert=leaf)

    assert context.client_chain == (leaf, test_pki.intermediate, test_pki.root)
    assert context.client_cert == leaf


def test_revoked_leaf_fails(store, test_pki):
    key = new_key()
    leaf = test_pki.leaf("agent01", key)

    with pytest.raises(ValidationFailed, match="has been revoked"):
        TrustContextValidator(store).create_context(
            bundle=_bundle(test_pki, revoked=(leaf.serial_number,)), private_key=key, client_cert=leaf
        )


def test_revoked_leaf_passes_when_revocation_disabled(store, test_pki):
    key = new_key()
    leaf = test_pki.leaf("agent01", key)

    context = TrustContextValidator(store, revocation="false").create_context(
        bundle=_bundle(test_pki, revoked=(leaf.serial_number,)), private_key=key, client_cert=leaf
    )

    assert context.client_cert == leaf


def test_leaf_mode_ignores_missing_root_crl(store, test_pki):
    key = new_key()
    leaf = test_pki.leaf("agent01", key)
    bundle = TrustBundle(
        cacerts=tuple(test_pki.cacerts),
        crls=(test_pki.crl(test_pki.intermediate, test_pki.intermediate_key),),
    )

    TrustContextValidator(store, revocation="leaf").create_context(bundle=bundle, private_key=key, client_cert=leaf)

    with pytest.raises(ValidationFailed, match="CRL issued by 'CN=Test Root CA' is missing"):
        TrustContextValidator(store, revocation="chain").create_context(bundle=bundle, private_key=key, client_cert=leaf)


def test_expired_crl_fails(store, test_pki):
    key = new_key()
    leaf = test_pki.leaf("agent01", key)
    now = datetime.now(timezone.utc)
    stale = test_pki.crl(test_pki.intermediate, test_pki.intermediate_key)
    bundle = TrustBundle(cacerts=tuple(test_pki.cacerts), crls=(stale, test_pki.crl(test_pki.root, test_pki.root_key)))
    validator = TrustContextValidator(store, clock=lambda: now + timedelta(days=2))

    with pytest.raises(ValidationFailed, match="has expired"):
        validator.create_context(bundle=bundle, private_key=key, client_cert=leaf)


def test_expired_certificate_fails(store, test_pki):
    key = new_key()
    now = datetime.now(timezone.utc)
    leaf = test_pki.leaf("agent01", key, not_before=now - timedelta(days=10), not_after=now - timedelta(days=1))

    with pytest.raises(ValidationFailed, match="has expired"):
        TrustContextValidator(store).create_context(bundle=_bundle(test_pki), private_key=key, client_cert=leaf)


def test_not_yet_valid_certificate_fails(store, test_pki):
    key = new_key()
    now = datetime.now(timezone.utc)
    leaf = test_pki.leaf("agent01", key, not_before=now + timedelta(hours=1))

    with pytest.raises(ValidationFailed, match="not yet valid"):
        TrustContextValidator(store).create_context(bundle=_bundle(test_pki), private_key=key, client_cert=leaf)


def test_missing_intermediate_fails(store, test_pki):
    key = new_key()
    leaf = test_pki.leaf("agent01", key)
    bundle = TrustBundle(cacerts=(test_pki.root,), crls=tuple(test_pki.crls()))

    with pytest.raises(ValidationFailed, match="unable to get local issuer certificate"):
        TrustContextValidator(store).create_context(bundle=bundle, private_key=key, client_cert=leaf)


def test_self_signed_client_certificate_fails(store, test_pki):
    key = new_key()
    leaf = TestPki.issue("agent01", key.public_key(), signer=None, signer_key=key)

    with pytest.raises(ValidationFailed, match="self-signed"):
        TrustContextValidator(store, revocation="false").create_context(
            bundle=_bundle(test_pki), private_key=key, client_cert=leaf
        )


def test_root_context_requires_ca_certificates(store, test_pki):
    leaf = test_pki.leaf("agent01", new_key())
    validator = TrustContextValidator(store)

    with pytest.raises(ValidationFailed, match="empty"):
        validator.create_root_context([])
    with pytest.raises(ValidationFailed, match="is not a CA certificate"):
        validator.create_root_context([leaf, test_pki.root])


def test_root_context_rejects_foreign_crl(store, test_pki):
    rogue = TestPki(root_cn="Rogue Root CA")

    with pytest.raises(ValidationFailed, match="not signed by a trusted CA"):
        TrustContextValidator(store).create_root_context(test_pki.cacerts, rogue.crls())


def test_load_context_reports_missing_material(trusted_store, test_pki):
    validator = TrustContextValidator(trusted_store)

    with pytest.raises(CredentialMissing, match="private key"):
        validator.load_context("agent01")

    key = new_key()
    trusted_store.save_private_key("agent01", key)
    trusted_store.save_client_cert("agent01", test_pki.leaf("agent01", key))

    assert validator.load_context("agent01").client_chain[-1] == test_pki.root


def test_load_context_without_crl(store, test_pki):
    store.save_cacerts(test_pki.cacerts)

    with pytest.raises(CredentialMissing, match="CRL"):
        TrustContextValidator(store).load_context("agent01")
