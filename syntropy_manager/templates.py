"""
Configuration templates per interface and environment.
"""
from string import Template
from typing import Any, Dict, Optional

from .errors import InvalidRequestError, TemplateNotFoundError
from .models import ConfigTemplate, InterfaceType, TemplateValidation, TemplateVariable

ENVIRONMENTS = ("windows", "linux", "darwin")

_HEADER = "# Configuration template '${template_name}' for ${interface} on ${environment}\n"

_BODIES = {
    "default": """interface:
  type: ${interface}
  theme: default
  language: en
environment:
  os: ${environment}
  home_dir: ${home_dir}
manager:
  log_level: ${log_level}
  api_endpoint: ${api_endpoint}
security:
  encryption_algorithm: AES-256-GCM
  key_rotation_days: 90
network:
  port: 8080
  host: localhost
  compression: true
""",
    "minimal": """interface:
  type: ${interface}
environment:
  os: ${environment}
  home_dir: ${home_dir}
manager:
  log_level: ${log_level}
  api_endpoint: ${api_endpoint}
""",
    "secure": """interface:
  type: ${interface}
  theme: default
  language: en
environment:
  os: ${environment}
  home_dir: ${home_dir}
manager:
  log_level: ${log_level}
  api_endpoint: ${api_endpoint}
security:
  encryption_algorithm: AES-256-GCM
  key_rotation_days: 30
  ssl_enabled: true
  allowed_ips:
    - 127.0.0.1
    - ::1
network:
  port: 8443
  host: localhost
  timeout: 15
  compression: true
""",
}

_DESCRIPTIONS = {
    "default": "Default configuration template",
    "minimal": "Minimal configuration with manager settings only",
    "secure": "Hardened configuration with short key rotation and TLS",
}


def _variables() -> list:
    return [
        TemplateVariable(
            name="home_dir", type="string", default="~/.syntropy", required=True,
            description="Home directory for Syntropy configuration", validation="path",
        ),
        TemplateVariable(
            name="log_level", type="string", default="info", required=False,
            description="Logging level", validation="enum",
            options=["debug", "info", "warn", "error"],
        ),
        TemplateVariable(
            name="api_endpoint", type="string", default="http://localhost:8080", required=True,
            description="API endpoint URL", validation="url",
        ),
    ]


class TemplateProvider:
    """Looks up built-in templates and renders them with string.Template."""

    def names(self) -> list:
        return sorted(_BODIES)

    def get(self, interface: str, environment: str, template: Optional[str] = None) -> ConfigTemplate:
        try:
            iface = InterfaceType(interface)
        except ValueError as e:
            raise InvalidRequestError(
                f"Invalid interface '{interface}'; expected one of {[i.value for i in InterfaceType]}."
            ) from e
        env = (environment or "").lower()
        if env not in ENVIRONMENTS:
            raise TemplateNotFoundError(f"No template for environment '{environment}'.")
        name = template or "default"
        if name not in _BODIES:
            raise TemplateNotFoundError(f"Template '{name}' not found.")

        fixed = {"template_name": name, "interface": iface.value, "environment": env}
        content = Template(_HEADER + _BODIES[name]).safe_substitute(fixed)
        variables = _variables()
        return ConfigTemplate(
            name=name,
            description=_DESCRIPTIONS[name],
            interface=iface.value,
            environment=env,
            content=content,
            variables=variables,
            validation=TemplateValidation(
                required=["interface", "environment", "manager"],
                optional=["security", "network"],
                defaults={v.name: v.default for v in variables},
            ),
            metadata={"created_by": "syntropy-manager", "interface": iface.value, "environment": env},
        )

    @staticmethod
    def render(template: ConfigTemplate, values: Optional[Dict[str, Any]] = None) -> str:
        """Interpolate variable defaults overlaid with values; unknown placeholders are left as-is."""
        mapping = {v.name: v.default for v in template.variables if v.default is not None}
        mapping.update(values or {})
        return Template(template.content).safe_substitute({k: str(v) for k, v in mapping.items()})
