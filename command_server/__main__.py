"""
Entry point for running the voice command server.

Usage:
    python -m command_server

Listens on HOST:PORT (default 0.0.0.0:80). With SECURE=true the server uses
TLS on port 443 by default, loading server-key.pem, server-crt.pem and
ca-crt.pem from SSL_DIR and requiring client certificates.
"""
import ssl

import uvicorn

from logging_setup import setup_logging
from .config import get_config

if __name__ == "__main__":
    config = get_config()

    # Initialize logging
    setup_logging(level=config.log_level, use_json=True)

    tls = {}
    if config.secure:
        tls = dict(
            ssl_keyfile=str(config.ssl_keyfile),
            ssl_certfile=str(config.ssl_certfile),
            ssl_ca_certs=str(config.ssl_ca_certs),
            ssl_keyfile_password=config.ssl_passphrase,
            ssl_cert_reqs=ssl.CERT_REQUIRED,
        )

    uvicorn.run(
        "command_server.server:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        **tls,
    )
