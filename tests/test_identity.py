"""Tests for interchain_e2e/identity.py - key provisioning and derivation."""

from __future__ import annotations

import pytest

from interchain_e2e.errors import SetupError
from interchain_e2e.identity import KeyManager, KeyProvisioning


class TestKeyProvisioning:
    def test_sample_file_loads(self, keys):
        assert "hpl-relayer" in keys.names
        assert keys.deployer == "validator"
        assert keys.validator == "hpl-validator"
        assert keys.relayer == "hpl-relayer"

    def test_duplicate_names_rejected(self, keys_data):
        keys_data["keys"].append(dict(keys_data["keys"][0]))
        with pytest.raises(SetupError, match="Duplicate"):
            KeyProvisioning.from_dict(keys_data)

    def test_role_must_name_a_provisioned_key(self, keys_data):
        keys_data["roles"]["relayer"] = "nobody"
        with pytest.raises(SetupError, match="relayer"):
            KeyProvisioning.from_dict(keys_data)

    def test_missing_roles_section(self, keys_data):
        del keys_data["roles"]
        with pytest.raises(SetupError, match="Malformed"):
            KeyProvisioning.from_dict(keys_data)

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(SetupError):
            KeyProvisioning.from_file(tmp_path / "missing.json")

    def test_unknown_mnemonic(self, keys):
        with pytest.raises(SetupError):
            keys.mnemonic("nobody")


class TestKeyManager:
    def test_signer_key_is_hex_private_key(self, keys):
        key = KeyManager(keys).signer_key(keys.relayer)
        assert key.startswith("0x")
        assert len(key) == 66

    def test_derivation_is_deterministic(self, keys):
        assert KeyManager(keys).signer_key("validator") == KeyManager(keys).signer_key("validator")

    def test_distinct_keys_per_name(self, keys):
        manager = KeyManager(keys)
        assert manager.signer_key(keys.validator) != manager.signer_key(keys.relayer)

    def test_validator_address_format(self, keys):
        addr = KeyManager(keys).validator_address(keys.validator)
        assert len(addr) == 40
        assert addr == addr.lower()
        assert not addr.startswith("0x")
        int(addr, 16)
