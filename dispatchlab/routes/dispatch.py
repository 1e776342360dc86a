"""Widget tree and event dispatch routes."""

import flask_babel
from flask import Blueprint, jsonify, request

from dispatchlab.lib.current_app import get_harness_instance, get_site_name
from dispatchlab.lib.events import EventKind
from dispatchlab.lib.widgets import DispatchError, WidgetNotFound
from dispatchlab.version import __version__

dispatch_bp = Blueprint("dispatch", __name__)

_ = flask_babel.gettext


@dispatch_bp.route("/")
def index():
    k = get_harness_instance()
    return jsonify(
        {
            "site": get_site_name(),
            "version": __version__,
            "widgets": len(k.tree),
            "dispatched": k.dispatch_count,
            "failed": k.failure_count,
        }
    )


@dispatch_bp.route("/widgets", methods=["GET"])
def widgets():
    k = get_harness_instance()
    return jsonify(k.tree.describe())


@dispatch_bp.route("/event_kinds", methods=["GET"])
def event_kinds():
    return jsonify([kind.value for kind in EventKind])


@dispatch_bp.route("/dispatch", methods=["POST"])
def dispatch():
    """Send one event to a widget and return the dispatch trace.
    ---
    tags:
      - Dispatch
    parameters:
      - name: body
        in: body
        required: true
        schema:
          properties:
            widget:
              type: string
            kind:
              type: string
            payload:
              type: object
    responses:
      200:
        description: The ordered dispatch steps
      400:
        description: Unknown event kind or bad request
      404:
        description: Unknown widget
    """
    k = get_harness_instance()
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = {}
    widget = body.get("widget")
    kind = body.get("kind")
    if not widget or not kind:
        # MSG: Error returned when a dispatch request lacks the widget or event kind.
        return jsonify({"error": _("Both 'widget' and 'kind' are required")}), 400
    payload = body.get("payload")
    if payload is not None and not isinstance(payload, dict):
        # MSG: Error returned when a dispatch request carries a payload that is not a JSON object.
        return jsonify({"error": _("'payload' must be a JSON object")}), 400
    try:
        trace = k.dispatch(widget, kind, payload)
    except WidgetNotFound as e:
        return jsonify({"error": str(e)}), 404
    except (ValueError, DispatchError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"widget": widget, "kind": EventKind.parse(kind).value, "trace": trace})
