import pytest
import yaml

from syntropy_manager.errors import InvalidRequestError, TemplateNotFoundError
from syntropy_manager.templates import TemplateProvider


@pytest.fixture
def provider():
    return TemplateProvider()


def test_default_template(provider):
    t = provider.get("cli", "linux")
    assert t.name == "default"
    assert t.interface == "cli"
    assert t.environment == "linux"
    assert t.content.startswith("# Configuration template 'default' for cli on linux\n")
    assert "type: cli" in t.content
    assert "${home_dir}" in t.content
    assert [v.name for v in t.variables] == ["home_dir", "log_level", "api_endpoint"]
    assert t.validation.defaults["log_level"] == "info"
    assert t.validation.required == ["interface", "environment", "manager"]

def test_named_templates(provider):
    assert provider.names() == ["default", "minimal", "secure"]
    minimal = provider.get("web", "darwin", "minimal")
    assert "security:" not in minimal.content
    secure = provider.get("desktop", "WINDOWS", "secure")
    assert secure.environment == "windows"
    assert "key_rotation_days: 30" in secure.content

def test_render_fills_defaults_and_overrides(provider):
    t = provider.get("cli", "linux", "secure")
    rendered = yaml.safe_load(TemplateProvider.render(t, {"log_level": "debug"}))
    assert rendered["environment"]["home_dir"] == "~/.syntropy"
    assert rendered["manager"] == {"log_level": "debug", "api_endpoint": "http://localhost:8080"}
    assert rendered["security"]["allowed_ips"] == ["127.0.0.1", "::1"]
    assert rendered["network"]["port"] == 8443

def test_unknown_interface_is_a_bad_request(provider):
    with pytest.raises(InvalidRequestError):
        provider.get("telepathy", "linux")

@pytest.mark.parametrize("environment, name", [("plan9", None), ("linux", "paranoid"), ("", None)])
def test_unknown_template(provider, environment, name):
    with pytest.raises(TemplateNotFoundError):
        provider.get("cli", environment, name)
