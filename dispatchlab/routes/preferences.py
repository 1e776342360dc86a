"""Harness preferences routes."""

from flask import Blueprint, jsonify, request

from dispatchlab.lib.current_app import get_harness_instance

preferences_bp = Blueprint("preferences", __name__)


@preferences_bp.route("/preferences", methods=["GET"])
def preferences():
    k = get_harness_instance()
    return jsonify(k.preferences.get_all())


@preferences_bp.route("/change_preferences", methods=["GET"])
def change_preferences():
    """Change a harness preference setting.
    ---
    tags:
      - Preferences
    parameters:
      - name: pref
        in: query
        type: string
        required: true
      - name: val
        in: query
        type: string
        required: true
    responses:
      200:
        description: JSON result of preference change
    """
    k = get_harness_instance()
    preference = request.args["pref"]
    val = request.args["val"]
    rc = k.change_preferences(preference, val)
    return jsonify(rc)


@preferences_bp.route("/clear_preferences", methods=["GET"])
def clear_preferences():
    k = get_harness_instance()
    rc = k.clear_preferences()
    return jsonify(rc)
