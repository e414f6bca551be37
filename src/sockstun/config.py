"""
Client configuration models.

A ClientConfig is built once and never mutated. Credentials are a tagged
variant decided at construction: either NoAuth or PasswordAuth.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .protocol import DEFAULT_PROXY_PORT, AuthMethod


class NoAuth(BaseModel):
    """Offer only the "no authentication" method."""

    model_config = ConfigDict(frozen=True)

    method: Literal["none"] = "none"


class PasswordAuth(BaseModel):
    """Offer username/password authentication (RFC 1929)."""

    model_config = ConfigDict(frozen=True)

    method: Literal["password"] = "password"
    username: str = Field(..., description="Username sent during subnegotiation")
    password: str = Field(..., repr=False, description="Password sent during subnegotiation")


Auth = Annotated[Union[NoAuth, PasswordAuth], Field(discriminator="method")]


class ClientConfig(BaseModel):
    """Where the proxy lives and how to authenticate to it."""

    model_config = ConfigDict(frozen=True)

    proxy_host: str = Field(
        ...,
        min_length=1,
        description="Proxy hostname or IP address"
    )
    proxy_port: int = Field(
        default=DEFAULT_PROXY_PORT,
        ge=1,
        le=65535,
        description="Proxy port"
    )
    auth: Auth = Field(
        default_factory=NoAuth,
        description="Authentication to offer the proxy"
    )

    @classmethod
    def from_credentials(
        cls,
        proxy_host: str,
        proxy_port: int = DEFAULT_PROXY_PORT,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> "ClientConfig":
        """
        Build a config from loose credentials.

        Raises:
            ValueError: If only one of username and password is given
        """
        if username is None and password is None:
            return cls(proxy_host=proxy_host, proxy_port=proxy_port)
        if username is None or password is None:
            raise ValueError("Username and password must be given together")
        return cls(
            proxy_host=proxy_host,
            proxy_port=proxy_port,
            auth=PasswordAuth(username=username, password=password),
        )

    @property
    def auth_methods(self) -> tuple[AuthMethod, ...]:
        """Methods offered in the greeting, in order."""
        if isinstance(self.auth, PasswordAuth):
            return (AuthMethod.NO_AUTH, AuthMethod.USERNAME_PASSWORD)
        return (AuthMethod.NO_AUTH,)

    @property
    def proxy_address(self) -> str:
        return f"{self.proxy_host}:{self.proxy_port}"
