"""TLS material handed to ``requests`` for authenticated downloads."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from deploy_agent.domain.errors import ConfigurationError


@dataclass(frozen=True)
class TlsSettings:
    """Secure-transport provider.

    ``ca_bundle`` overrides the system trust store; ``client_cert`` and
    ``client_key`` enable mutual TLS. ``insecure`` disables verification.
    """

    ca_bundle: Optional[Path] = None
    client_cert: Optional[Path] = None
    client_key: Optional[Path] = None
    insecure: bool = False

    def __post_init__(self) -> None:
        if self.client_key is not None and self.client_cert is None:
            raise ConfigurationError("TLS client key given without client certificate")

    @property
    def verify(self) -> Union[bool, str]:
        if self.insecure:
            return False
        if self.ca_bundle is not None:
            return str(self.ca_bundle)
        return True

    @property
    def cert(self) -> Optional[Union[str, Tuple[str, str]]]:
        if self.client_cert is None:
            return None
        if self.client_key is None:
            return str(self.client_cert)
        return (str(self.client_cert), str(self.client_key))


__all__ = ["TlsSettings"]
