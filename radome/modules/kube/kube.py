import logging
import ssl
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from radome.config.provider import KubeSettings
from radome.errors import BackendUnavailable, ClusterQueryError

logger = logging.getLogger("radome.kube")


def call_kube(call: Callable[..., Any], *args: Any, allow_missing: bool = True, **kwargs: Any) -> Any:
    """
    Invoke a Kubernetes API call, separating "not found" from real failures.

    Args:
        call: Bound kubernetes client method
        allow_missing: Return None on 404 instead of raising

    Returns:
        The API result, or None when the object does not exist

    Raises:
        ClusterQueryError: For any other API or transport failure
    """
    try:
        return call(*args, **kwargs)
    except ApiException as e:
        if e.status == 404 and allow_missing:
            return None
        raise ClusterQueryError(
            f"Kubernetes API error ({e.status}): {e.reason}", kube_status=e.status
        ) from e
    except ClusterQueryError:
        raise
    except Exception as e:
        raise ClusterQueryError(f"Kubernetes API unreachable: {e}") from e


@dataclass
class TunnelCredentials:
    """TLS material and auth headers for talking to the API server directly."""

    server: str
    ca_file: Optional[str] = None
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    verify: bool = True
    static_headers: Dict[str, str] = field(default_factory=dict)
    configuration: Optional[Any] = field(default=None, repr=False)
    _ssl_context: Optional[ssl.SSLContext] = field(default=None, init=False, repr=False)

    def ssl_context(self) -> ssl.SSLContext:
        """Build (once) an SSL context usable by both httpx and websockets."""
        if self._ssl_context is None:
            context = ssl.create_default_context(cafile=self.ca_file)
            if self.cert_file:
                context.load_cert_chain(self.cert_file, self.key_file)
            if not self.verify:
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE
            self._ssl_context = context
        return self._ssl_context

    def auth_headers(self) -> Dict[str, str]:
        """Headers the API server expects; token refresh hooks run on each call."""
        headers = dict(self.static_headers)
        if self.configuration is not None:
            token = self.configuration.get_api_key_with_prefix("authorization")
            if token:
                headers["Authorization"] = token
            elif self.configuration.username and self.configuration.password:
                headers["Authorization"] = self.configuration.get_basic_auth_token()
        return headers


class KubeModule:
    """
    Kubernetes client holder.

    Loads the client configuration once (explicit kubeconfig path, then an
    embedded kubeconfig string, then in-cluster service account) and hands
    out API objects plus tunnel credentials derived from the same config.
    """

    def __init__(
        self,
        settings: KubeSettings,
        core_api: Optional[client.CoreV1Api] = None,
        apps_api: Optional[client.AppsV1Api] = None,
        configuration: Optional[client.Configuration] = None,
    ):
        """
        Initialize Kubernetes module.

        Args:
            settings: Kubernetes configuration sources
            core_api: Pre-built CoreV1Api (tests)
            apps_api: Pre-built AppsV1Api (tests)
            configuration: Pre-built client configuration (tests)
        """
        self.settings = settings
        self.configuration = configuration
        self.source: Optional[str] = None
        self.load_error: Optional[str] = None
        self._core_api = core_api
        self._apps_api = apps_api
        self._credentials: Optional[TunnelCredentials] = None

    def load(self) -> bool:
        """
        Load client configuration according to source precedence.

        Returns:
            True if a configuration was loaded
        """
        configuration = client.Configuration()
        settings = self.settings

        try:
            if settings.config_path:
                config.load_kube_config(
                    config_file=settings.config_path,
                    context=settings.context,
                    client_configuration=configuration,
                )
                self.source = f"kubeconfig file {settings.config_path}"
            elif settings.config_string:
                config.load_kube_config_from_dict(
                    yaml.safe_load(settings.config_string),
                    context=settings.context,
                    client_configuration=configuration,
                )
                self.source = "embedded kubeconfig"
            else:
                config.load_incluster_config(client_configuration=configuration)
                self.source = "in-cluster service account"
        except (config.ConfigException, yaml.YAMLError, OSError, TypeError) as e:
            self.load_error = str(e) or e.__class__.__name__
            logger.error(f"Failed to load Kubernetes configuration: {self.load_error}")
            return False

        if settings.insecure_skip_tls_verify:
            configuration.verify_ssl = False
            logger.warning(
                "TLS verification against the Kubernetes API server is DISABLED "
                "(RADOME_KUBE_INSECURE_SKIP_TLS_VERIFY=true). Do not use this in production."
            )

        self.configuration = configuration
        api_client = client.ApiClient(configuration)
        self._core_api = client.CoreV1Api(api_client)
        self._apps_api = client.AppsV1Api(api_client)
        self._credentials = None
        logger.info(f"Kubernetes client configured from {self.source} ({configuration.host})")
        return True

    def _require_loaded(self) -> None:
        if self._core_api is None or self._apps_api is None:
            reason = self.load_error or "configuration not loaded"
            raise ClusterQueryError(f"Kubernetes client unavailable: {reason}")

    @property
    def core_api(self) -> client.CoreV1Api:
        self._require_loaded()
        return self._core_api

    @property
    def apps_api(self) -> client.AppsV1Api:
        self._require_loaded()
        return self._apps_api

    def tunnel_credentials(self) -> TunnelCredentials:
        """
        Credentials for reaching services through the API server proxy.

        Raises:
            BackendUnavailable: If no cluster/context could be resolved
        """
        if self._credentials is not None:
            return self._credentials

        configuration = self.configuration
        if configuration is None or not configuration.host:
            reason = self.load_error or "no current cluster or context"
            raise BackendUnavailable(f"Kubernetes API server is not resolvable: {reason}")

        self._credentials = TunnelCredentials(
            server=configuration.host.rstrip("/"),
            ca_file=configuration.ssl_ca_cert,
            cert_file=configuration.cert_file,
            key_file=configuration.key_file,
            verify=bool(configuration.verify_ssl),
            configuration=configuration,
        )
        return self._credentials
