"""Channel Storage: a multi-tenant gateway over Google Cloud Storage.

Each channel (tenant) names its own service-account credentials and bucket.
The same storage interface is available in-process (``storage``), over the
network through the gateway (``gateway``), and from remote callers
(``remote_client``).
"""

__version__ = "0.1.0"

from .config import ChannelConfig
from .config import ChannelConfigMap
from .config import load_channel_config_map
from .exceptions import AuthError
from .exceptions import BackendUnavailableError
from .exceptions import ChannelStorageError
from .exceptions import ConfigurationError
from .exceptions import CredentialError
from .exceptions import InternalError
from .exceptions import InvalidArgumentError
from .exceptions import NotFoundError
from .models import AccessToken
from .models import DownloadUrl
from .models import ObjectInfo

__all__ = [
    "AccessToken",
    "AuthError",
    "BackendUnavailableError",
    "ChannelConfig",
    "ChannelConfigMap",
    "ChannelStorageError",
    "ConfigurationError",
    "CredentialError",
    "DownloadUrl",
    "InternalError",
    "InvalidArgumentError",
    "NotFoundError",
    "ObjectInfo",
    "load_channel_config_map",
]
