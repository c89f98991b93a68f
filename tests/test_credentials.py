"""
Tests for certificate credential resolution
"""
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from dormant_cleanup.config import ConfigurationError, IdentityConfig
from dormant_cleanup.credentials import (
    CertificateNotFoundError,
    CertificateStoreResolver,
    PemFileCredentialResolver,
    normalize_thumbprint,
    resolve_credential,
    resolver_for,
)


def make_bundle(common_name="dormant-cleanup"):
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    ) + certificate.public_bytes(serialization.Encoding.PEM)
    return pem, certificate.fingerprint(hashes.SHA1()).hex().upper()


@pytest.fixture(scope="module")
def bundle():
    return make_bundle()


def identity(thumbprint, **kwargs):
    return IdentityConfig(
        tenant_id="tenant", client_id="client", certificate_thumbprint=thumbprint, **kwargs
    )


class TestThumbprint:
    def test_normalization(self):
        assert normalize_thumbprint("AB:CD ef 01") == "abcdef01"


class TestPemFileResolver:
    """Single PEM bundle"""

    def test_matching_thumbprint(self, tmp_path, bundle):
        pem, thumbprint = bundle
        path = tmp_path / "app.pem"
        path.write_bytes(pem)

        credential = PemFileCredentialResolver(path).resolve(identity(thumbprint.lower()))

        assert credential.thumbprint == thumbprint
        assert "PRIVATE KEY" in credential.private_key
        assert "BEGIN CERTIFICATE" in credential.public_certificate
        assert set(credential.as_msal_credential()) == {
            "private_key",
            "thumbprint",
            "public_certificate",
        }

    def test_wrong_thumbprint(self, tmp_path, bundle):
        pem, _ = bundle
        path = tmp_path / "app.pem"
        path.write_bytes(pem)

        with pytest.raises(CertificateNotFoundError):
            PemFileCredentialResolver(path).resolve(identity("00" * 20))

    def test_missing_file(self, tmp_path):
        with pytest.raises(CertificateNotFoundError):
            PemFileCredentialResolver(tmp_path / "absent.pem").resolve(identity("ab"))

    def test_file_without_key(self, tmp_path):
        path = tmp_path / "junk.pem"
        path.write_text("not a certificate", encoding="utf-8")

        with pytest.raises(CertificateNotFoundError):
            PemFileCredentialResolver(path).resolve(identity("ab"))


class TestCertificateStoreResolver:
    """Directory of PEM bundles searched by thumbprint"""

    def test_finds_matching_certificate(self, tmp_path, bundle):
        pem, thumbprint = bundle
        other_pem, _ = make_bundle("other")
        (tmp_path / "a-other.pem").write_bytes(other_pem)
        (tmp_path / "b-broken.pem").write_text("garbage", encoding="utf-8")
        (tmp_path / "c-app.pem").write_bytes(pem)
        (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

        credential = CertificateStoreResolver(tmp_path).resolve(identity(thumbprint))

        assert credential.thumbprint == thumbprint

    def test_no_match(self, tmp_path, bundle):
        pem, _ = bundle
        (tmp_path / "app.pem").write_bytes(pem)

        with pytest.raises(CertificateNotFoundError):
            CertificateStoreResolver(tmp_path).resolve(identity("00" * 20))

    def test_store_must_be_directory(self, tmp_path):
        with pytest.raises(CertificateNotFoundError):
            CertificateStoreResolver(tmp_path / "absent").resolve(identity("ab"))


class TestResolverSelection:
    def test_path_wins(self, tmp_path):
        resolver = resolver_for(identity("ab", certificate_path=tmp_path / "a.pem", certificate_store=tmp_path))
        assert isinstance(resolver, PemFileCredentialResolver)

    def test_store(self, tmp_path):
        assert isinstance(resolver_for(identity("ab", certificate_store=tmp_path)), CertificateStoreResolver)

    def test_no_source_configured(self):
        with pytest.raises(ConfigurationError):
            resolve_credential(identity("ab"))

    def test_not_found_is_configuration_error(self):
        assert issubclass(CertificateNotFoundError, ConfigurationError)
