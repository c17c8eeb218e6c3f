"""Exception hierarchy for cx-voice-connector."""


class ConnectorError(Exception):
    """Base exception for all connector errors."""
    pass


class ConfigError(ConnectorError):
    """The local configuration file could not be read or parsed."""
    pass


class AuthError(ConnectorError):
    """A provider rejected the credentials outright (HTTP 401/403)."""

    def __init__(self, provider: str, message: str = "Authentication failed"):
        self.provider = provider
        super().__init__(f"Invalid {provider} API key: {message}")


class RemoteUnavailable(ConnectorError):
    """Transport failure, unexpected status, or unexpected response schema."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class NotConfigured(ConnectorError):
    """The provider has no stored API key."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"{provider} is not configured")


class DomainNotFound(ConnectorError):
    """The referenced Cloudonix domain is not in the local configuration."""

    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"Domain {domain} not found in configuration")


class UnsupportedProvider(ConnectorError):
    """Unknown provider key after alias resolution."""

    def __init__(self, name: str, supported: list[str]):
        self.name = name
        self.supported = supported
        super().__init__(
            f"Unsupported provider: {name!r}. Supported providers: {', '.join(supported)}"
        )


class ProvisioningError(ConnectorError):
    """A provisioning precondition is not met (missing SIP URI, trunk, bad number)."""
    pass
