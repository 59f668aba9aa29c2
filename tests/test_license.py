"""Tests for license validation and feature gating."""

from __future__ import annotations

import os
import stat
from datetime import date, datetime, timedelta
from typing import Callable

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from compresskit import License, LicenseStatus, LicenseType, LicenseValidator, SecurityConfig
from compresskit.license import (
    install_license,
    issue_test_license,
    parse_license_fields,
    public_key_pem,
    sign_license,
)

TODAY = date(2026, 10, 18)


def install_record(config: SecurityConfig, key, text: str) -> bytes:  # type: ignore[no-untyped-def]
    payload = text.encode("utf-8")
    install_license(payload, sign_license(payload, key), public_key_pem(key), config=config)
    return payload


def record_text(license_type: str = "pro", expires: str = "2026-10-19") -> str:
    return (
        f"Type:{license_type}\n"
        "Customer:Acme Print Shop\n"
        "Email:ops@acme.example\n"
        "Issued:2026-01-01\n"
        f"Expires:{expires}\n"
        "Features:batch_processing\n"
        "LicenseID:ACME-0001\n"
    )


class TestStatus:
    """Tests for the status decision sequence."""

    def test_missing_when_nothing_installed(self, licenses: LicenseValidator) -> None:
        assert licenses.validate_license() is LicenseStatus.MISSING

    def test_missing_when_public_key_absent(
        self, config: SecurityConfig, signing_key, licenses: LicenseValidator
    ) -> None:
        issue_test_license(private_key=signing_key, issued=TODAY, config=config)
        os.unlink(config.public_key_file)
        assert licenses.validate_license() is LicenseStatus.MISSING

    def test_valid_until_expiry(self, config: SecurityConfig, signing_key, licenses: LicenseValidator) -> None:
        issue_test_license(LicenseType.PRO, 1, private_key=signing_key, issued=TODAY, config=config)
        report = licenses.evaluate()
        assert report.status is LicenseStatus.VALID
        assert report.license is not None
        assert report.license.type is LicenseType.PRO
        assert report.license.expires == TODAY + timedelta(days=1)

    def test_expired_yesterday(self, config: SecurityConfig, signing_key, licenses: LicenseValidator) -> None:
        issue_test_license(LicenseType.PRO, -1, private_key=signing_key, issued=TODAY, config=config)
        assert licenses.validate_license() is LicenseStatus.EXPIRED

    def test_expires_at_start_of_expiry_date(
        self, config: SecurityConfig, signing_key, validator_factory: Callable[..., LicenseValidator]
    ) -> None:
        install_record(config, signing_key, record_text(expires="2026-10-19"))
        assert validator_factory(datetime(2026, 10, 18, 23, 59)).validate_license() is LicenseStatus.VALID
        assert validator_factory(datetime(2026, 10, 19, 0, 1)).validate_license() is LicenseStatus.EXPIRED

    def test_flipped_signature_bit(self, config: SecurityConfig, signing_key, licenses: LicenseValidator) -> None:
        issue_test_license(LicenseType.PRO, 30, private_key=signing_key, issued=TODAY, config=config)
        signature = bytearray(config.signature_file.read_bytes())
        signature[0] ^= 0x01
        config.signature_file.write_bytes(bytes(signature))
        assert licenses.validate_license() is LicenseStatus.INVALID_SIGNATURE

    def test_signature_checked_before_expiry(
        self, config: SecurityConfig, signing_key, licenses: LicenseValidator
    ) -> None:
        """An expired record with a bad signature reports the signature."""
        issue_test_license(LicenseType.PRO, -10, private_key=signing_key, issued=TODAY, config=config)
        signature = bytearray(config.signature_file.read_bytes())
        signature[-1] ^= 0x80
        config.signature_file.write_bytes(bytes(signature))
        assert licenses.validate_license() is LicenseStatus.INVALID_SIGNATURE

    def test_tampered_record(self, config: SecurityConfig, signing_key, licenses: LicenseValidator) -> None:
        payload = install_record(config, signing_key, record_text("basic"))
        config.license_file.write_bytes(payload.replace(b"Type:basic", b"Type:enterprise"))
        assert licenses.validate_license() is LicenseStatus.INVALID_SIGNATURE

    def test_key_from_another_signer(self, config: SecurityConfig, signing_key, licenses: LicenseValidator) -> None:
        install_record(config, signing_key, record_text())
        other = ed25519.Ed25519PrivateKey.generate()
        config.public_key_file.write_bytes(public_key_pem(other))
        assert licenses.validate_license() is LicenseStatus.INVALID_SIGNATURE

    def test_unknown_type_is_invalid_format(
        self, config: SecurityConfig, signing_key, licenses: LicenseValidator
    ) -> None:
        install_record(config, signing_key, record_text("platinum"))
        assert licenses.validate_license() is LicenseStatus.INVALID_FORMAT

    def test_bad_expiry_is_invalid_format(
        self, config: SecurityConfig, signing_key, licenses: LicenseValidator
    ) -> None:
        install_record(config, signing_key, record_text(expires="next year"))
        assert licenses.validate_license() is LicenseStatus.INVALID_FORMAT

    def test_unparsable_record_is_corrupt(
        self, config: SecurityConfig, signing_key, licenses: LicenseValidator
    ) -> None:
        install_record(config, signing_key, "this is not a license\n")
        assert licenses.validate_license() is LicenseStatus.CORRUPT

    def test_empty_record_is_corrupt(self, config: SecurityConfig, signing_key, licenses: LicenseValidator) -> None:
        install_record(config, signing_key, record_text())
        config.license_file.write_bytes(b"")
        assert licenses.validate_license() is LicenseStatus.CORRUPT

    def test_garbage_public_key_is_corrupt(
        self, config: SecurityConfig, signing_key, licenses: LicenseValidator
    ) -> None:
        install_record(config, signing_key, record_text())
        config.public_key_file.write_bytes(b"-----BEGIN PUBLIC KEY-----\nnope\n-----END PUBLIC KEY-----\n")
        assert licenses.validate_license() is LicenseStatus.CORRUPT

    def test_no_caching_between_queries(
        self, config: SecurityConfig, signing_key, licenses: LicenseValidator
    ) -> None:
        payload = install_record(config, signing_key, record_text())
        assert licenses.validate_license() is LicenseStatus.VALID
        config.license_file.write_bytes(payload + b"Extra:1\n")
        assert licenses.validate_license() is LicenseStatus.INVALID_SIGNATURE

    @pytest.mark.parametrize("algorithm", ["rsa", "ecdsa"])
    def test_other_key_types(self, config: SecurityConfig, licenses: LicenseValidator, algorithm: str) -> None:
        if algorithm == "rsa":
            key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        else:
            key = ec.generate_private_key(ec.SECP256R1())
        install_record(config, key, record_text())
        assert licenses.validate_license() is LicenseStatus.VALID


class TestFeatures:
    """Tests for feature-permission resolution."""

    def test_pro_tier(self, config: SecurityConfig, signing_key, licenses: LicenseValidator) -> None:
        issue_test_license(LicenseType.PRO, 30, private_key=signing_key, issued=TODAY, config=config)
        assert licenses.is_feature_licensed("batch_processing")
        assert licenses.is_feature_licensed("ultra_compression")
        assert not licenses.is_feature_licensed("priority_support")

    def test_basic_tier(self, config: SecurityConfig, signing_key, licenses: LicenseValidator) -> None:
        issue_test_license(LicenseType.BASIC, 30, private_key=signing_key, issued=TODAY, config=config)
        assert licenses.is_feature_licensed("ultra_compression")
        assert not licenses.is_feature_licensed("batch_processing")

    def test_enterprise_tier(self, config: SecurityConfig, signing_key, licenses: LicenseValidator) -> None:
        issue_test_license("enterprise", 30, private_key=signing_key, issued=TODAY, config=config)
        for feature in ("ultra_compression", "batch_processing", "priority_support", "custom_profiles"):
            assert licenses.is_feature_licensed(feature)

    def test_unknown_feature_denied(self, config: SecurityConfig, signing_key, licenses: LicenseValidator) -> None:
        issue_test_license("enterprise", 30, private_key=signing_key, issued=TODAY, config=config)
        assert not licenses.is_feature_licensed("time_travel")

    def test_expired_license_grants_nothing(
        self, config: SecurityConfig, signing_key, licenses: LicenseValidator
    ) -> None:
        issue_test_license("enterprise", -1, private_key=signing_key, issued=TODAY, config=config)
        assert not licenses.is_feature_licensed("ultra_compression")

    def test_features_field_is_informational(
        self, config: SecurityConfig, signing_key, licenses: LicenseValidator
    ) -> None:
        """The tier decides; a Features line cannot grant extra features."""
        text = record_text("basic").replace("Features:batch_processing", "Features:priority_support")
        install_record(config, signing_key, text)
        assert not licenses.is_feature_licensed("priority_support")


class TestInstallation:
    """Tests for license files on disk."""

    def test_file_permissions(self, config: SecurityConfig, signing_key) -> None:
        issue_test_license(private_key=signing_key, issued=TODAY, config=config)
        assert stat.S_IMODE(os.stat(config.config_dir).st_mode) == 0o700
        assert stat.S_IMODE(os.stat(config.license_file).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(config.signature_file).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(config.public_key_file).st_mode) == 0o644

    def test_issued_record_contents(self, config: SecurityConfig, signing_key) -> None:
        record = issue_test_license("pro", 30, private_key=signing_key, issued=TODAY, config=config)
        fields = parse_license_fields(config.license_file.read_text())
        assert fields["Type"] == "pro"
        assert fields["Expires"] == "2026-11-17"
        assert fields["LicenseID"].startswith("TEST-")
        assert License.from_text(config.license_file.read_text()) == record

    def test_invalid_type_rejected(self, config: SecurityConfig, signing_key) -> None:
        with pytest.raises(ValueError):
            issue_test_license("gold", private_key=signing_key, config=config)


class TestParsing:
    """Tests for the record format."""

    def test_blank_lines_ignored(self) -> None:
        fields = parse_license_fields("\nType:pro\n\nExpires:2027-01-01\n")
        assert fields == {"Type": "pro", "Expires": "2027-01-01"}

    def test_value_may_contain_colons(self) -> None:
        assert parse_license_fields("Customer:Acme: Printing")["Customer"] == "Acme: Printing"

    @pytest.mark.parametrize("text", ["", "no separator here", ":value"])
    def test_malformed(self, text: str) -> None:
        with pytest.raises(ValueError):
            parse_license_fields(text)

    def test_from_text_requires_type_and_expiry(self) -> None:
        with pytest.raises(ValueError):
            License.from_text("Type:pro\nCustomer:x\n")

    def test_to_text_layout(self) -> None:
        record = License(
            type=LicenseType.BASIC,
            customer="Jo",
            email="jo@example.com",
            issued=date(2026, 1, 1),
            expires=date(2027, 1, 1),
            license_id="L-1",
            features=("ultra_compression",),
        )
        assert record.to_text().splitlines() == [
            "Type:basic",
            "Customer:Jo",
            "Email:jo@example.com",
            "Issued:2026-01-01",
            "Expires:2027-01-01",
            "Features:ultra_compression",
            "LicenseID:L-1",
        ]
