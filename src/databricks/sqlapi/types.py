from dataclasses import dataclass
from typing import Optional


@dataclass
class SSLOptions:
    """
    TLS settings shared by every HTTP connection the client opens.

    Attributes:
        tls_verify (bool): Verify the server certificate. Disable only for testing.
        tls_verify_hostname (bool): Check that the certificate matches the hostname.
        tls_trusted_ca_file (str): Path to a PEM bundle of trusted CA certificates.
        tls_client_cert_file (str): Path to a client certificate for mutual TLS.
        tls_client_cert_key_file (str): Path to the private key of the client certificate.
        tls_client_cert_key_password (str): Password of the private key, if encrypted.
    """

    tls_verify: bool = True
    tls_verify_hostname: bool = True
    tls_trusted_ca_file: Optional[str] = None
    tls_client_cert_file: Optional[str] = None
    tls_client_cert_key_file: Optional[str] = None
    tls_client_cert_key_password: Optional[str] = None
