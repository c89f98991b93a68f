"""Certificate credential resolution for the Graph app registration."""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization

from .config import ConfigurationError, IdentityConfig

logger = logging.getLogger(__name__)

PEM_SUFFIXES = (".pem", ".crt", ".cer")
_PEM_BLOCK = re.compile(rb"-----BEGIN ([A-Z0-9 ]+)-----.+?-----END \1-----", re.DOTALL)


class CertificateNotFoundError(ConfigurationError):
    """Raised when the configured certificate cannot be located or read."""


def normalize_thumbprint(raw: str) -> str:
    return "".join(ch for ch in (raw or "") if ch not in " :").lower()


@dataclass(frozen=True)
class CertificateCredential:
    """Key material in the shape msal expects for ``client_credential``."""

    private_key: str
    thumbprint: str
    public_certificate: str

    def as_msal_credential(self) -> Dict[str, str]:
        return {
            "private_key": self.private_key,
            "thumbprint": self.thumbprint,
            "public_certificate": self.public_certificate,
        }


def load_pem_credential(path: Path) -> CertificateCredential:
    """Read a PEM bundle holding both a private key and its certificate."""

    try:
        data = path.read_bytes()
    except OSError as exc:
        raise CertificateNotFoundError(f"Unable to read certificate '{path}': {exc}") from exc

    blocks = {}
    for match in _PEM_BLOCK.finditer(data):
        blocks.setdefault(match.group(1).decode("ascii"), match.group(0))
    key_block = next(
        (block for label, block in blocks.items() if label.endswith("PRIVATE KEY")), None
    )
    cert_block = blocks.get("CERTIFICATE")
    if key_block is None or cert_block is None:
        raise CertificateNotFoundError(
            f"'{path}' must contain both a private key and a certificate."
        )

    try:
        certificate = x509.load_pem_x509_certificate(cert_block)
        private_key = serialization.load_pem_private_key(key_block, password=None)
    except (TypeError, ValueError) as exc:
        raise CertificateNotFoundError(
            f"'{path}' must contain an unencrypted private key and a certificate: {exc}"
        ) from exc

    key_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    cert_pem = certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")
    return CertificateCredential(
        private_key=key_pem,
        thumbprint=certificate.fingerprint(hashes.SHA1()).hex().upper(),
        public_certificate=cert_pem,
    )


class CredentialResolver(ABC):
    """Locates the certificate credential for an identity configuration."""

    @abstractmethod
    def resolve(self, identity: IdentityConfig) -> CertificateCredential:
        raise NotImplementedError


class PemFileCredentialResolver(CredentialResolver):
    """Loads a single PEM file and checks it against the configured thumbprint."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def resolve(self, identity: IdentityConfig) -> CertificateCredential:
        if not self.path.exists():
            raise CertificateNotFoundError(f"Certificate file '{self.path}' does not exist.")
        credential = load_pem_credential(self.path)
        expected = normalize_thumbprint(identity.certificate_thumbprint)
        if normalize_thumbprint(credential.thumbprint) != expected:
            raise CertificateNotFoundError(
                f"Certificate '{self.path}' has thumbprint {credential.thumbprint}, "
                f"expected {identity.certificate_thumbprint}."
            )
        return credential


class CertificateStoreResolver(CredentialResolver):
    """Searches a directory of PEM bundles for the configured thumbprint."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _candidates(self) -> Iterator[Path]:
        for path in sorted(self.directory.iterdir()):
            if path.is_file() and path.suffix.lower() in PEM_SUFFIXES:
                yield path

    def resolve(self, identity: IdentityConfig) -> CertificateCredential:
        if not self.directory.is_dir():
            raise CertificateNotFoundError(
                f"Certificate store '{self.directory}' is not a directory."
            )
        expected = normalize_thumbprint(identity.certificate_thumbprint)
        for path in self._candidates():
            try:
                credential = load_pem_credential(path)
            except CertificateNotFoundError as exc:
                logger.debug("Skipping unreadable certificate %s: %s", path, exc)
                continue
            if normalize_thumbprint(credential.thumbprint) == expected:
                logger.info("Using certificate %s from store %s", credential.thumbprint, self.directory)
                return credential
        raise CertificateNotFoundError(
            f"No certificate with thumbprint {identity.certificate_thumbprint} "
            f"found in '{self.directory}'."
        )


def resolver_for(identity: IdentityConfig) -> CredentialResolver:
    if identity.certificate_path:
        return PemFileCredentialResolver(identity.certificate_path)
    if identity.certificate_store:
        return CertificateStoreResolver(identity.certificate_store)
    raise ConfigurationError(
        "No certificate source configured. Set CertificatePath or CertificateStorePath."
    )


def resolve_credential(
    identity: IdentityConfig, resolver: Optional[CredentialResolver] = None
) -> CertificateCredential:
    """Return the certificate credential for ``identity``; fails fast when missing."""

    return (resolver or resolver_for(identity)).resolve(identity)


__all__ = [
    "CertificateCredential",
    "CertificateNotFoundError",
    "CertificateStoreResolver",
    "CredentialResolver",
    "PemFileCredentialResolver",
    "load_pem_credential",
    "normalize_thumbprint",
    "resolve_credential",
    "resolver_for",
]
