import logging
import os

import uvicorn

logger = logging.getLogger(__name__)
APP_MODULE = "clubhouse.main:app"
DEFAULT_PORT = 8000


def _port_from_env() -> int:
    for key in ("APP_PORT", "PORT"):
        raw = os.getenv(key)
        if not raw:
            continue
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring %s=%s (not an integer)", key, raw)
    return DEFAULT_PORT


def _tls_options() -> dict[str, str]:
    cert = os.getenv("SSL_CERT_FILE")
    key = os.getenv("SSL_KEY_FILE")
    if bool(cert) != bool(key):
        logger.warning("SSL_CERT_FILE and SSL_KEY_FILE must be set together; serving plain HTTP.")
        return {}
    if not cert:
        return {}
    logger.info("Serving clubhouse over HTTPS with %s", cert)
    return {"ssl_certfile": cert, "ssl_keyfile": key}


def main() -> None:
    uvicorn.run(
        APP_MODULE,
        host=os.getenv("APP_HOST", "0.0.0.0"),
        port=_port_from_env(),
        log_level=os.getenv("UVICORN_LOG_LEVEL", "info"),
        proxy_headers=True,
        **_tls_options(),
    )


if __name__ == "__main__":
    main()
