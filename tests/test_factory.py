import re
from functools import lru_cache

from hypothesis import assume, given, settings, strategies as st

from syntropy_manager.config import dump_config_yaml, verify_config_yaml
from syntropy_manager.crypto import generate_rsa_keypair, public_key_pem
from syntropy_manager.errors import KeyGenerationError
from syntropy_manager.factory import ConfigFactory, with_checksum
from syntropy_manager.models import ConfigRequest, EnvironmentInfo, InterfaceType

from .conftest import FIXED_NOW, fixed_clock

HEX64 = re.compile(r"^[0-9a-f]{64}$")


def linux_request(home="/home/t", interface=InterfaceType.CLI, user_id="u"):
    return ConfigRequest(
        type="setup",
        interface=interface,
        user_id=user_id,
        environment=EnvironmentInfo(os="linux", architecture="amd64", home_dir=home),
    )


def fresh_keygen():
    key = generate_rsa_keypair()
    return key, public_key_pem(key)


@lru_cache(maxsize=1)
def sample_yaml():
    config = ConfigFactory(fixed_clock, fresh_keygen).build(linux_request())
    return dump_config_yaml(config), config.metadata.checksum


def test_build_for_linux_home(factory):
    config = factory.build(linux_request())
    assert config.manager.home_dir == "/home/t/.syntropy"
    assert config.manager.home_dir.endswith(".syntropy")
    assert config.manager.directories.keys == "/home/t/.syntropy/keys"
    assert config.manager.default_paths.manager_config == "/home/t/.syntropy/config/manager.yaml"
    assert config.manager.database.name == "/home/t/.syntropy/syntropy.db"
    assert config.owner_key.public_key.startswith("-----BEGIN PUBLIC KEY-----")
    assert config.owner_key.path == "/home/t/.syntropy/keys/owner.key"
    assert config.owner_key.size == 2048
    assert HEX64.match(config.metadata.checksum)
    assert config.metadata.created_at == FIXED_NOW
    assert config.metadata.created_by == "u"
    assert config.interface.type == "cli"
    assert config.security.allowed_ips == ["127.0.0.1", "::1"]
    assert config.network.endpoints == ["http://localhost:8080"]

def test_generated_config_is_sound(factory):
    config = factory.build(linux_request())
    assert factory.check_invariants(config) == []
    assert "PRIVATE KEY" not in dump_config_yaml(config)
    assert factory.validate_config(config).valid

def test_build_is_idempotent_for_the_same_instant(factory):
    first = dump_config_yaml(factory.build(linux_request(), now=FIXED_NOW))
    second = dump_config_yaml(factory.build(linux_request(), now=FIXED_NOW))
    assert first == second

def test_build_differs_only_in_key_material():
    factory = ConfigFactory(fixed_clock, fresh_keygen)
    a = factory.build(linux_request())
    b = factory.build(linux_request())
    assert a.owner_key.public_key != b.owner_key.public_key

    def strip(config):
        data = config.model_dump(mode="json")
        data["owner_key"]["public_key"] = ""
        data["metadata"]["checksum"] = ""
        return data

    assert strip(a) == strip(b)

def test_checksum_roundtrip():
    text, checksum = sample_yaml()
    assert verify_config_yaml(text, checksum)

@settings(max_examples=50, deadline=None)
@given(position=st.integers(min_value=0), replacement=st.sampled_from(list("aZ09 :-_'\"#{}\n")))
def test_any_mutation_breaks_the_checksum(position: int, replacement: str):
    text, checksum = sample_yaml()
    pos = position % len(text)
    assume(text[pos] != replacement)
    mutated = text[:pos] + replacement + text[pos + 1:]
    assert not verify_config_yaml(mutated, checksum)

def test_reseal_after_edit(factory):
    config = factory.build(linux_request())
    edited = config.model_copy(update={"network": config.network.model_copy(update={"port": 9090})})
    assert factory.check_invariants(edited) == ["metadata checksum does not match the config"]
    resealed = with_checksum(edited)
    assert factory.check_invariants(resealed) == []
    assert resealed.metadata.checksum != config.metadata.checksum

def test_invariants_catch_escaping_config_path(factory):
    config = factory.build(linux_request())
    paths = config.manager.default_paths.model_copy(update={"manager_config": "/etc/manager.yaml"})
    bad = with_checksum(config.model_copy(update={"manager": config.manager.model_copy(update={"default_paths": paths})}))
    assert factory.check_invariants(bad) == ["manager config path is not under the manager home directory"]

def test_failed_key_generation_yields_empty_owner_key():
    def broken():
        raise KeyGenerationError("no entropy")

    factory = ConfigFactory(fixed_clock, broken)
    config, private_key = factory.build_with_key(linux_request())
    assert private_key is None
    assert config.owner_key.path == ""
    result = factory.validate_config(config)
    assert not result.valid
    assert {"MISSING_KEY_PATH", "MISSING_PUBLIC_KEY"} <= {e.code for e in result.errors}

def test_validate_null_config(factory):
    result = factory.validate_config(None)
    assert not result.valid
    assert [e.code for e in result.errors] == ["NULL_CONFIG"]
    assert result.errors[0].category.value == "configuration"

def test_validate_flags_checksum_and_soft_fields(factory):
    config = factory.build(linux_request())
    tampered = config.model_copy(update={
        "network": config.network.model_copy(update={"port": 0}),
        "security": config.security.model_copy(update={"encryption_algorithm": ""}),
    })
    result = factory.validate_config(tampered)
    assert [e.code for e in result.errors] == ["INVALID_CHECKSUM"]
    assert {w.code for w in result.warnings} == {"MISSING_PORT", "MISSING_ENCRYPTION_ALGORITHM"}
