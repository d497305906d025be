"""FarmHub device backend server."""

import argparse
import logging
import os

from farmhub import create_app, socketio


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Run the FarmHub device backend")
    parser.add_argument("--host", default=os.environ.get("FARMHUB_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("FARMHUB_PORT", 8000)))
    parser.add_argument("--seed-demo", action="store_true", help="register the demo devices on startup")
    args = parser.parse_args(argv)

    overrides = {"seed_demo_devices": True} if args.seed_demo else None
    app = create_app(overrides, bootstrap_runtime=True)

    logging.getLogger(__name__).info("Server starting on http://%s:%s", args.host, args.port)
    try:
        socketio.run(
            app,
            host=args.host,
            port=args.port,
            debug=False,
            use_reloader=False,
            allow_unsafe_werkzeug=True,
        )
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Server stopped by user")
    finally:
        app.config["CONTAINER"].shutdown()


if __name__ == "__main__":
    main()
