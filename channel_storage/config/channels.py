"""Channel configuration map.

A channel is a tenant name that selects the service-account credentials and
bucket a request operates on. The map is built once at startup and never
mutated afterwards, so concurrent readers need no locking.

Example document::

    tenant1:
      credentialsFile: /etc/keys/tenant1.json
      bucket: tenant1-assets
    tenant2:
      credentialsUrl: https://keys.example.com/tenant2.json
      bucket: tenant2-assets
"""

from __future__ import annotations

from collections.abc import Iterator
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

import yaml
from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError
from pydantic import model_validator

from ..exceptions import ConfigurationError
from ..exceptions import InvalidArgumentError


class ChannelConfig(BaseModel):
    """Backend configuration of one channel."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    credentials_file: str | None = Field(
        default=None,
        validation_alias=AliasChoices("credentials_file", "credentialsFile", "credentailsFile"),
    )
    credentials_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("credentials_url", "credentialsUrl", "credentailsUrl"),
    )
    bucket: str = Field(min_length=1)

    @model_validator(mode="after")
    def check_single_credential_source(self) -> ChannelConfig:
        if bool(self.credentials_file) == bool(self.credentials_url):
            raise ValueError("exactly one of credentialsFile or credentialsUrl is required")
        return self

    @property
    def is_remote_source(self) -> bool:
        return bool(self.credentials_url)

    @property
    def credential_source(self) -> str:
        return self.credentials_url or self.credentials_file or ""


class ChannelConfigMap(Mapping[str, ChannelConfig]):
    """Immutable ``channel -> ChannelConfig`` mapping."""

    def __init__(self, channels: Mapping[str, ChannelConfig]):
        self._channels = MappingProxyType(dict(channels))

    def __getitem__(self, channel: str) -> ChannelConfig:
        return self._channels[channel]

    def __iter__(self) -> Iterator[str]:
        return iter(self._channels)

    def __len__(self) -> int:
        return len(self._channels)

    def __repr__(self) -> str:
        return f"ChannelConfigMap(channels={sorted(self._channels)})"

    def get_config(self, channel: str) -> ChannelConfig | None:
        """Return the channel's configuration, or None when unknown."""
        return self._channels.get(channel)

    def resolve(self, channel: str | None) -> ChannelConfig:
        """Return the channel's configuration.

        Raises:
            InvalidArgumentError: If the channel is empty or not configured.
        """
        if not channel:
            raise InvalidArgumentError("channel is required", field="channel")
        config = self._channels.get(channel)
        if config is None:
            raise InvalidArgumentError(f"channel not found [{channel}]", field="channel", value=channel)
        return config

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ChannelConfigMap:
        """Build a map from a parsed mapping document."""
        if not isinstance(data, Mapping):
            raise ConfigurationError("channel map must be a mapping of channel name to config")
        channels: dict[str, ChannelConfig] = {}
        for name, entry in data.items():
            if not isinstance(entry, Mapping):
                raise ConfigurationError(f"channel [{name}] must be a mapping", field=str(name))
            try:
                channels[str(name)] = ChannelConfig.model_validate(dict(entry))
            except ValidationError as e:
                raise ConfigurationError(
                    f"invalid configuration for channel [{name}]: {e}", field=str(name)
                ) from e
        return cls(channels)


def load_channel_config_map(path: str | Path) -> ChannelConfigMap:
    """Load a channel map from a YAML file.

    Raises:
        ConfigurationError: If the file cannot be read or is not a valid map.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"cannot read channel map {path}: {e}", field="path", value=str(path)) from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"malformed channel map {path}: {e}", field="path", value=str(path)) from e
    return ChannelConfigMap.from_dict(data)
