"""Configuration package (Facade).

Re-exports the public config types so callers import from one stable path:

	from controlplane.services.config import ProvisioningConfig

Each config is a frozen dataclass with a ``from_env()`` constructor. Missing
required settings raise ``ConfigurationError`` (a ``ValueError``), which the CLI
turns into exit code 2.
"""

from controlplane.services.config.aws_config import AwsConfig
from controlplane.services.config.errors import ConfigurationError
from controlplane.services.config.provisioning_config import (
	IdentityConfig,
	MetricsConfig,
	NotificationConfig,
	ProvisioningConfig,
)

__all__ = [
	"AwsConfig",
	"ConfigurationError",
	"IdentityConfig",
	"MetricsConfig",
	"NotificationConfig",
	"ProvisioningConfig",
]
