"""
Configuration management for pve-inventory.
"""

import json
import ssl
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import ObjectType, Realm, Scheme

PVE_SETTING_KEYS = (
    "host",
    "port",
    "scheme",
    "realm",
    "username",
    "password",
    "ssl_verify_peer",
    "ssl_verify_host",
)
IMPORT_SETTING_KEYS = ("object_type", "vm_guest_agent", "vm_ha", "vm_description")


class PveConfig(BaseSettings):
    """
    PVE connection configuration. Immutable once created.
    """

    model_config = SettingsConfigDict(
        env_prefix="PVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    host: str = Field(description="PVE host address (FQDN matching its certificate, or IP)")
    port: int = Field(default=8006, description="PVE API port")
    scheme: Scheme = Field(default=Scheme.HTTPS, description="HTTPS (recommended) or HTTP")
    realm: Realm = Field(default=Realm.PAM, description="Authentication realm: pam or pve")
    username: str = Field(description="User name, without the realm suffix")
    password: Optional[SecretStr] = Field(default=None, description="User password")
    ssl_verify_peer: bool = Field(
        default=True,
        description="Check that the server certificate is signed by a trusted CA",
    )
    ssl_verify_host: bool = Field(
        default=True,
        description="Check that the server certificate matches the host",
    )
    timeout: float = Field(default=30.0, description="Request timeout in seconds")

    @property
    def base_url(self) -> str:
        return f"{self.scheme.value.lower()}://{self.host}:{self.port}/api2/json"

    @property
    def tls_verify(self) -> Union[bool, ssl.SSLContext]:
        """
        Verification setting for the HTTP transport.

        The TLS flags only apply to HTTPS; plain HTTP ignores them.
        """
        if self.scheme == Scheme.HTTP:
            return True
        if not self.ssl_verify_peer:
            return False
        if not self.ssl_verify_host:
            context = ssl.create_default_context()
            context.check_hostname = False
            return context
        return True


class ImportConfig(BaseSettings):
    """
    What an import fetches.
    """

    model_config = SettingsConfigDict(
        env_prefix="PVE_IMPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    object_type: ObjectType = Field(
        default=ObjectType.VIRTUAL_MACHINE,
        description="The PVE object type to fetch",
    )
    vm_guest_agent: bool = Field(
        default=False,
        description="Fetch network data from the QEMU guest agent (needs VM.Monitor)",
    )
    vm_ha: bool = Field(
        default=False,
        description="Fetch the HA state of each VM (one extra call per VM)",
    )
    vm_description: bool = Field(
        default=False,
        description="Fetch the description of each VM (one extra call per VM)",
    )


class AppConfig(BaseSettings):
    """
    Combined application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    pve: PveConfig = Field(default_factory=PveConfig)
    importer: ImportConfig = Field(default_factory=ImportConfig)


def _pick(settings: Mapping[str, Any], keys: tuple[str, ...]) -> dict[str, Any]:
    return {
        key: settings[key]
        for key in keys
        if settings.get(key) is not None and settings.get(key) != ""
    }


def config_from_settings(settings: Mapping[str, Any]) -> AppConfig:
    """
    Build configuration from an import-source settings map.

    Boolean settings may be given as "y"/"n". Unknown keys are ignored.

    Args:
        settings: Mapping of setting names to values.

    Returns:
        AppConfig instance.
    """
    return AppConfig(
        pve=PveConfig(**_pick(settings, PVE_SETTING_KEYS)),
        importer=ImportConfig(**_pick(settings, IMPORT_SETTING_KEYS)),
    )


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """
    Load configuration from file and environment variables.

    Args:
        config_path: Optional path to a JSON config file.

    Returns:
        AppConfig instance with merged configuration.
    """
    if config_path and config_path.exists():
        with open(config_path) as f:
            config_data = json.load(f)
        return AppConfig(
            pve=PveConfig(**config_data.get("pve", {})),
            importer=ImportConfig(**config_data.get("importer", {})),
        )
    return AppConfig()


def save_config(config: AppConfig, config_path: Path) -> None:
    """
    Save configuration to a JSON file. The password is never written.

    Args:
        config: AppConfig instance to save.
        config_path: Path to save the config file.
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "pve": {
            "host": config.pve.host,
            "port": config.pve.port,
            "scheme": config.pve.scheme.value,
            "realm": config.pve.realm.value,
            "username": config.pve.username,
            "ssl_verify_peer": config.pve.ssl_verify_peer,
            "ssl_verify_host": config.pve.ssl_verify_host,
        },
        "importer": {
            "object_type": config.importer.object_type.value,
            "vm_guest_agent": config.importer.vm_guest_agent,
            "vm_ha": config.importer.vm_ha,
            "vm_description": config.importer.vm_description,
        },
    }

    with open(config_path, "w") as f:
        json.dump(data, f, indent=2)
