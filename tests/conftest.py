from __future__ import annotations

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from app.models.pass_content import Pass
from pipelines.bundle.credentials import Credential, extract_credential
from tests.helpers.passes import make_pass
from tests.helpers.pki import P12_PASSWORD, Authority, issue_certificate, make_authority


def _unencrypted_pem(key) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def issuer() -> Authority:
    """Stand-in for the WWDR intermediate."""
    return make_authority("Test Worldwide Developer Relations")


@pytest.fixture(scope="session")
def other_issuer() -> Authority:
    return make_authority("Unrelated Issuer")


@pytest.fixture(scope="session")
def signer_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def signer_certificate(issuer: Authority, signer_key):
    return issue_certificate("Pass Type ID: pass.com.example.test", signer_key.public_key(), issuer, issuer.key)


@pytest.fixture(scope="session")
def p12_bytes(signer_key, signer_certificate, issuer: Authority) -> bytes:
    return pkcs12.serialize_key_and_certificates(
        b"pass-signer",
        signer_key,
        signer_certificate,
        [issuer.certificate],
        serialization.BestAvailableEncryption(P12_PASSWORD.encode()),
    )


@pytest.fixture(scope="session")
def unencrypted_p12_bytes(signer_key, signer_certificate) -> bytes:
    return pkcs12.serialize_key_and_certificates(
        b"pass-signer", signer_key, signer_certificate, None, serialization.NoEncryption()
    )


@pytest.fixture(scope="session")
def certificate_only_p12_bytes(signer_certificate) -> bytes:
    return pkcs12.serialize_key_and_certificates(
        b"pass-signer",
        None,
        signer_certificate,
        None,
        serialization.BestAvailableEncryption(P12_PASSWORD.encode()),
    )


@pytest.fixture(scope="session")
def credential(p12_bytes) -> Credential:
    return extract_credential(p12_bytes, P12_PASSWORD)


@pytest.fixture(scope="session")
def mismatched_credential(signer_certificate) -> Credential:
    stray_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return Credential(
        certificate_pem=signer_certificate.public_bytes(serialization.Encoding.PEM),
        private_key_pem=_unencrypted_pem(stray_key),
    )


@pytest.fixture(scope="session")
def ec_credential(issuer: Authority) -> Credential:
    key = ec.generate_private_key(ec.SECP256R1())
    certificate = issue_certificate("EC Pass Signer", key.public_key(), issuer, issuer.key)
    return Credential(
        certificate_pem=certificate.public_bytes(serialization.Encoding.PEM),
        private_key_pem=_unencrypted_pem(key),
    )


@pytest.fixture
def sample_pass() -> Pass:
    return make_pass()


@pytest.fixture
def pass_json(sample_pass: Pass) -> bytes:
    return sample_pass.to_json_bytes()
