"""Command line interface for running the API server."""
import logging
import uvicorn

from config import settings_conf

logger = logging.getLogger(__name__)

def main():
    """Run the API server with the configured host and port."""
    host = settings_conf['api_host']
    port = settings_conf['api_port']
    logger.info(f"Starting API on {host}:{port} ({settings_conf['store_backend']} store)")
    uvicorn.run(
        "api:app",
        host=host,
        port=port,
        log_level=settings_conf['log_level'].lower()
    )

if __name__ == "__main__":
    # Use uvloop if available for better performance
    try:
        import uvloop
        uvloop.install()
    except ImportError:
        pass

    main()
