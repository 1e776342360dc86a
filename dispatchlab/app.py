import json
import logging
import os
import sys

from flask import Flask, request
from flask_babel import Babel
from gevent.pywsgi import WSGIServer

from dispatchlab.config import ConfigType
from dispatchlab.harness import Harness
from dispatchlab.lib.args import parse_dispatchlab_args
from dispatchlab.lib.logger import configure_logger
from dispatchlab.routes.dispatch import dispatch_bp
from dispatchlab.routes.preferences import preferences_bp
from dispatchlab.routes.registry import registry_bp

LANGUAGES = ["en"]


def get_locale():
    """Select the language based on the Accept-Language header"""
    return request.accept_languages.best_match(LANGUAGES) or "en"


def create_app(harness: Harness, config_type: ConfigType = ConfigType.PRODUCTION) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_type.value)

    app.register_blueprint(dispatch_bp)
    app.register_blueprint(registry_bp)
    app.register_blueprint(preferences_bp)

    Babel(app, locale_selector=get_locale)

    # expose harness object to the flask app
    app.harness = harness
    return app


def main():
    args = parse_dispatchlab_args()

    configure_logger(log_level=args.log_level)

    store_dir = os.path.dirname(os.path.abspath(args.store_path))
    if not os.path.exists(store_dir):
        logging.info(f"Creating store directory: {store_dir}")
        os.makedirs(store_dir)

    k = Harness(
        store_path=args.store_path,
        scene_path=args.scene,
        config_file_path=args.config_file_path,
        elevated=args.elevated,
        record_trace=args.record_trace,
    )

    if args.headless_demo:
        print(json.dumps(k.run_demo(), indent=2))
        k.stop()
        sys.exit(0)

    app = create_app(k)
    server = WSGIServer(("0.0.0.0", int(args.port)), app, log=None, error_log=logging.getLogger())
    logging.info(f"dispatchlab listening on port {args.port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logging.warning("Keyboard interrupt: exiting dispatchlab...")
    finally:
        server.stop()
        k.stop()
    sys.exit()


if __name__ == "__main__":
    main()
