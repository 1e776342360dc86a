from flask import current_app

from dispatchlab.harness import Harness


def get_harness_instance() -> Harness:
    """Get the current app's Harness instance

    Returns:
        Harness: The Harness instance attached to the current Flask app.
    """
    return current_app.harness


def get_site_name() -> str:
    return current_app.config["SITE_NAME"]
