"""Configuration store routes."""

import logging

import flask_babel
from flask import Blueprint, jsonify, request

from dispatchlab.lib.current_app import get_harness_instance
from dispatchlab.lib.registry import (
    AccessDenied,
    Malformed,
    NotFound,
    RegistryError,
    TypeMismatch,
    ValueType,
    from_json_data,
    to_json_data,
)

registry_bp = Blueprint("registry", __name__, url_prefix="/registry")

_ = flask_babel.gettext

ERROR_STATUS = {
    NotFound: 404,
    AccessDenied: 403,
    TypeMismatch: 409,
    Malformed: 422,
}


def _truthy(value) -> bool:
    return str(value).lower() in ("1", "true", "yes", "on")


@registry_bp.errorhandler(RegistryError)
def handle_registry_error(e: RegistryError):
    status = ERROR_STATUS.get(type(e), 400)
    logging.debug(f"Registry request failed ({e.kind}): {e}")
    # MSG: Prefix for configuration store error messages returned to clients.
    message = _("Configuration store error: %(message)s", message=str(e))
    return jsonify({"error": message, "kind": e.kind}), status


@registry_bp.route("/keys/<path:key_path>", methods=["GET"])
def get_key(key_path):
    """Describe a key: info, subkeys and values.
    ---
    tags:
      - Registry
    parameters:
      - name: expand
        in: query
        type: boolean
        description: Expand %VAR% references in expandable strings
    responses:
      200:
        description: Key description
      404:
        description: Key not found
    """
    k = get_harness_instance()
    expand = _truthy(request.args.get("expand", k.expand_on_read))
    info = k.store.key_info(key_path)
    values = []
    for name, data, value_type in k.store.enum_values(key_path):
        if expand and value_type == ValueType.EXPANDABLE_STRING:
            data = k.store.query_expanded(key_path, name)
        values.append(
            {"name": name, "type": value_type.value, "data": to_json_data(value_type, data)}
        )
    info["keys"] = k.store.enum_keys(key_path)
    info["value_list"] = values
    return jsonify(info)


@registry_bp.route("/keys/<path:key_path>", methods=["POST"])
def create_key(key_path):
    k = get_harness_instance()
    key = k.store.create_key(key_path)
    return jsonify({"path": key.path}), 201


@registry_bp.route("/keys/<path:key_path>", methods=["DELETE"])
def delete_key(key_path):
    k = get_harness_instance()
    if _truthy(request.args.get("tree", False)):
        k.store.delete_tree(key_path)
    else:
        k.store.delete_key(key_path)
    return jsonify({"deleted": key_path})


@registry_bp.route("/values/<path:key_path>", methods=["GET"])
def get_value(key_path):
    """Read one value.
    ---
    tags:
      - Registry
    parameters:
      - name: name
        in: query
        type: string
        description: Value name (empty for the default value)
      - name: type
        in: query
        type: string
        description: Expected type; a different stored type is a 409
      - name: expand
        in: query
        type: boolean
    """
    k = get_harness_instance()
    name = request.args.get("name", "")
    expected = request.args.get("type")
    expand = _truthy(request.args.get("expand", k.expand_on_read))

    if expected:
        value_type = ValueType.parse(expected)
        data = k.store.get_value(key_path, name, value_type)
    else:
        data, value_type = k.store.query_value(key_path, name)

    result = {"name": name, "type": value_type.value, "data": to_json_data(value_type, data)}
    if expand and value_type == ValueType.EXPANDABLE_STRING:
        result["expanded"] = k.store.query_expanded(key_path, name)
    return jsonify(result)


@registry_bp.route("/values/<path:key_path>", methods=["PUT"])
def set_value(key_path):
    k = get_harness_instance()
    body = request.get_json(silent=True)
    if not isinstance(body, dict) or "type" not in body or "data" not in body:
        raise Malformed("Request body must be JSON with 'type' and 'data'")
    value_type = ValueType.parse(body["type"])
    name = body.get("name", "")
    k.store.set_value(key_path, name, value_type, from_json_data(value_type, body["data"]))
    return jsonify({"name": name, "type": value_type.value})


@registry_bp.route("/values/<path:key_path>", methods=["DELETE"])
def delete_value(key_path):
    k = get_harness_instance()
    name = request.args.get("name", "")
    k.store.delete_value(key_path, name)
    return jsonify({"deleted": name})


@registry_bp.route("/export/<path:key_path>", methods=["GET"])
def export_key(key_path):
    k = get_harness_instance()
    return jsonify(k.store.export(key_path))


@registry_bp.route("/import/<path:key_path>", methods=["POST"])
def import_key(key_path):
    k = get_harness_instance()
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise Malformed("Request body must be a JSON object")
    written = k.store.import_tree(key_path, body)
    return jsonify({"written": written})
