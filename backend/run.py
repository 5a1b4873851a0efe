import uvicorn
import os
import logging
import argparse

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("layerlab-runner")

if __name__ == "__main__":
    # Parse command line arguments
    parser = argparse.ArgumentParser(description="LayerLab API Server")
    parser.add_argument("--debug", action="store_true", help="Run in debug mode (verbose logging)")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload on code changes")
    args = parser.parse_args()

    # Environment variables reach the reloader's child processes too
    if args.debug:
        os.environ["LAYERLAB_DEBUG"] = "1"
        logger.info("Debug mode enabled")

    # Set TF log level to reduce noise
    os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")  # 0=all, 1=info, 2=warning, 3=error

    logger.info(f"Starting LayerLab API on {args.host}:{args.port}...")
    uvicorn.run("main:app", host=args.host, port=args.port, reload=not args.no_reload)
