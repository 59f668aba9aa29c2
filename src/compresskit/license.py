"""
License validation and feature gating.

A license is a ``Key:Value`` text record plus a detached signature over its
exact bytes and a trusted public key, all stored in the config directory.
Validation is a fixed sequence of checks that stops at the first failure:

    read -> signature -> expiration -> type -> VALID

Nothing is cached; every query re-reads and re-verifies the files.
"""

from __future__ import annotations

import logging
import os
import time as _time
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Callable, Mapping, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa

from compresskit._types import PathPolicy
from compresskit.config import CONFIG, SecurityConfig
from compresskit.errors import PathError
from compresskit.security.paths import PathGuard
from compresskit.storage import SecureFileStore

logger = logging.getLogger(__name__)

LICENSE_FILE_MODE = 0o600
PUBLIC_KEY_FILE_MODE = 0o644
DATE_FORMAT = "%Y-%m-%d"

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey, ed25519.Ed25519PrivateKey]


class LicenseType(Enum):
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class LicenseStatus(Enum):
    """Outcome of a license check. Only VALID grants anything."""

    VALID = "valid"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    MISSING = "missing"
    CORRUPT = "corrupt"
    INVALID_FORMAT = "invalid_format"


ALL_TIERS = frozenset(LicenseType)

# Feature name -> license types that include it. Anything not listed is denied.
FEATURE_TIERS: Mapping[str, frozenset[LicenseType]] = {
    "ultra_compression": ALL_TIERS,
    "batch_processing": frozenset({LicenseType.PRO, LicenseType.ENTERPRISE}),
    "priority_support": frozenset({LicenseType.ENTERPRISE}),
    "custom_profiles": frozenset({LicenseType.ENTERPRISE}),
}


@dataclass(frozen=True)
class License:
    """A parsed license record."""

    type: LicenseType
    customer: str
    email: str
    issued: date | None
    expires: date
    license_id: str
    features: tuple[str, ...] = field(default_factory=tuple)

    def to_text(self) -> str:
        """Serialize to the on-disk ``Key:Value`` format."""
        lines = [
            f"Type:{self.type.value}",
            f"Customer:{self.customer}",
            f"Email:{self.email}",
            f"Issued:{self.issued.strftime(DATE_FORMAT) if self.issued else ''}",
            f"Expires:{self.expires.strftime(DATE_FORMAT)}",
            f"Features:{','.join(self.features)}",
            f"LicenseID:{self.license_id}",
        ]
        return "\n".join(lines) + "\n"

    @classmethod
    def from_text(cls, text: str) -> License:
        """
        Parse a record.

        Raises:
            ValueError: If the record is malformed or a required field is invalid.
        """
        fields = parse_license_fields(text)
        expires = _parse_date(fields.get("Expires"))
        if expires is None:
            raise ValueError("missing or invalid Expires field")
        license_type = _parse_type(fields.get("Type"))
        if license_type is None:
            raise ValueError("missing or invalid Type field")
        return cls._build(fields, license_type, expires)

    @classmethod
    def _build(cls, fields: Mapping[str, str], license_type: LicenseType, expires: date) -> License:
        features = tuple(f.strip() for f in fields.get("Features", "").split(",") if f.strip())
        return cls(
            type=license_type,
            customer=fields.get("Customer", ""),
            email=fields.get("Email", ""),
            issued=_parse_date(fields.get("Issued")),
            expires=expires,
            license_id=fields.get("LicenseID", ""),
            features=features,
        )


@dataclass(frozen=True)
class LicenseReport:
    """A status together with the license it was computed for (when parsed)."""

    status: LicenseStatus
    license: License | None = None
    reason: str = ""

    @property
    def valid(self) -> bool:
        return self.status is LicenseStatus.VALID


def parse_license_fields(text: str) -> dict[str, str]:
    """
    Split a record into its fields.

    Raises:
        ValueError: If a non-blank line has no ``:`` or no fields are present.
    """
    fields: dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            raise ValueError(f"malformed license line: {line[:40]!r}")
        fields[key.strip()] = value.strip()
    if not fields:
        raise ValueError("license record has no fields")
    return fields


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        return None


def _parse_type(value: str | None) -> LicenseType | None:
    try:
        return LicenseType((value or "").strip().lower())
    except ValueError:
        return None


def _verify_signature(public_key: object, signature: bytes, payload: bytes) -> bool:
    try:
        if isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(signature, payload, padding.PKCS1v15(), hashes.SHA256())
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, payload, ec.ECDSA(hashes.SHA256()))
        elif isinstance(public_key, ed25519.Ed25519PublicKey):
            public_key.verify(signature, payload)
        else:
            logger.error(f"Unsupported license key type: {type(public_key).__name__}")
            return False
    except InvalidSignature:
        return False
    return True


def sign_license(payload: bytes, private_key: PrivateKey) -> bytes:
    """Produce a detached signature for ``payload`` (SHA-256 where the algorithm takes a digest)."""
    if isinstance(private_key, rsa.RSAPrivateKey):
        return private_key.sign(payload, padding.PKCS1v15(), hashes.SHA256())
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return private_key.sign(payload, ec.ECDSA(hashes.SHA256()))
    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        return private_key.sign(payload)
    raise TypeError(f"unsupported private key type: {type(private_key).__name__}")


def public_key_pem(private_key: PrivateKey) -> bytes:
    return private_key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    )


class LicenseValidator:
    """
    Computes LicenseStatus and answers feature-permission queries.

    Example:
        >>> validator = LicenseValidator()
        >>> validator.validate_license()
        <LicenseStatus.MISSING: 'missing'>
        >>> validator.is_feature_licensed("batch_processing")
        False
    """

    def __init__(
        self,
        *,
        config: SecurityConfig = CONFIG,
        guard: PathGuard | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._guard = guard or PathGuard(config=config)
        self._clock = clock or datetime.now

    def validate_license(self) -> LicenseStatus:
        return self.evaluate().status

    def evaluate(self) -> LicenseReport:
        """Run every check in order and stop at the first failure."""
        try:
            license_path = self._guard.validate_path(self._config.license_file, PathPolicy.NORMAL)
            signature_path = self._guard.validate_path(self._config.signature_file, PathPolicy.NORMAL)
            key_path = self._guard.validate_path(self._config.public_key_file, PathPolicy.NORMAL)
        except PathError as exc:
            return self._fail(LicenseStatus.CORRUPT, f"license location rejected: {exc}")

        if not os.path.isfile(license_path) or not os.path.isfile(signature_path):
            return self._fail(LicenseStatus.MISSING, "license or signature file missing")
        if not os.path.isfile(key_path):
            return self._fail(LicenseStatus.MISSING, "trusted public key missing")

        try:
            payload = _read_bytes(license_path)
            signature = _read_bytes(signature_path)
            key_data = _read_bytes(key_path)
        except OSError as exc:
            return self._fail(LicenseStatus.CORRUPT, f"failed to read license material: {exc.strerror}")

        if not payload.strip() or not signature:
            return self._fail(LicenseStatus.CORRUPT, "license or signature file is empty")
        try:
            fields = parse_license_fields(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            return self._fail(LicenseStatus.CORRUPT, f"license record unparsable: {exc}")
        try:
            public_key = serialization.load_pem_public_key(key_data)
        except (ValueError, UnsupportedAlgorithm) as exc:
            return self._fail(LicenseStatus.CORRUPT, f"public key unparsable: {exc}")

        if not _verify_signature(public_key, signature, payload):
            return self._fail(LicenseStatus.INVALID_SIGNATURE, "invalid license signature")

        expires = _parse_date(fields.get("Expires"))
        if expires is None:
            return self._fail(LicenseStatus.INVALID_FORMAT, "missing or unparsable expiration date")
        now = self._clock().replace(tzinfo=None)
        if now > datetime.combine(expires, time.min):
            return self._fail(
                LicenseStatus.EXPIRED,
                f"license expired on {expires.isoformat()} (current date: {now.date().isoformat()})",
            )

        license_type = _parse_type(fields.get("Type"))
        if license_type is None:
            return self._fail(LicenseStatus.INVALID_FORMAT, "invalid license type")

        record = License._build(fields, license_type, expires)
        logger.info(f"License valid - Type: {record.type.value}, Customer: {record.customer}")
        return LicenseReport(LicenseStatus.VALID, record)

    def is_feature_licensed(self, feature: str) -> bool:
        """
        True only if the license is VALID and its type includes ``feature``.

        Unknown feature names are always denied.
        """
        tiers = FEATURE_TIERS.get(feature)
        if tiers is None:
            logger.warning(f"Unknown feature requested: {feature[:64]!r}")
            return False
        report = self.evaluate()
        if not report.valid or report.license is None:
            return False
        return report.license.type in tiers

    @staticmethod
    def _fail(status: LicenseStatus, reason: str) -> LicenseReport:
        logger.info(f"License check failed ({status.value}): {reason}")
        return LicenseReport(status, reason=reason)


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as fh:
        return fh.read()


def install_license(
    record: str | bytes,
    signature: bytes,
    public_key: bytes,
    *,
    config: SecurityConfig = CONFIG,
    store: SecureFileStore | None = None,
) -> None:
    """
    Write the license record, its signature and the trusted key.

    Record and signature are owner-only (0600); the public key is 0644; the
    directory is 0700. Each file is replaced atomically.
    """
    store = store or SecureFileStore(config=config)
    payload = record.encode("utf-8") if isinstance(record, str) else record
    store.ensure_private_dir(config.config_dir)
    store.atomic_write(str(config.public_key_file), public_key, perms=PUBLIC_KEY_FILE_MODE)
    store.atomic_write(str(config.signature_file), signature, perms=LICENSE_FILE_MODE)
    store.atomic_write(str(config.license_file), payload, perms=LICENSE_FILE_MODE)
    logger.info(f"Installed license into {config.config_dir}")


def issue_test_license(
    license_type: LicenseType | str = LicenseType.BASIC,
    days_valid: int = 30,
    *,
    private_key: PrivateKey,
    customer: str = "Test User",
    email: str = "test@example.com",
    issued: date | None = None,
    config: SecurityConfig = CONFIG,
    store: SecureFileStore | None = None,
) -> License:
    """
    Generate, sign and install a test license.

    ``days_valid`` may be negative to produce an already-expired license.
    """
    if not isinstance(license_type, LicenseType):
        parsed = _parse_type(license_type)
        if parsed is None:
            raise ValueError(f"invalid license type: {license_type!r}")
        license_type = parsed
    issued = issued or date.today()
    record = License(
        type=license_type,
        customer=customer,
        email=email,
        issued=issued,
        expires=issued + timedelta(days=days_valid),
        license_id=f"TEST-{int(_time.time())}",
        features=("batch_processing", "ultra_compression"),
    )
    payload = record.to_text().encode("utf-8")
    install_license(
        payload,
        sign_license(payload, private_key),
        public_key_pem(private_key),
        config=config,
        store=store,
    )
    logger.info(f"Generated test license of type {license_type.value} valid for {days_valid} days")
    return record


__all__ = [
    "FEATURE_TIERS",
    "License",
    "LicenseReport",
    "LicenseStatus",
    "LicenseType",
    "LicenseValidator",
    "install_license",
    "issue_test_license",
    "parse_license_fields",
    "public_key_pem",
    "sign_license",
]
