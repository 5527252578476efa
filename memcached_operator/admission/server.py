"""
HTTP surface for the admission and conversion webhooks
"""

# Third Party
from flask import Flask, jsonify, request

# First Party
import alog

# Local
from .. import constants
from .review import handle_convert, handle_mutate, handle_validate

log = alog.use_channel("WHSRV")

CONVERT_PATH = "/convert"


def webhook_path(prefix: str, api_version: str) -> str:
    """Build the per-revision webhook path, for example
    /mutate-memcached-c5c3-io-v1beta1-memcached
    """
    group, version = api_version.split("/")
    group_part = group.replace(".", "-")
    return f"/{prefix}-{group_part}-{version}-{constants.KIND.lower()}"


def create_app(registry) -> Flask:
    """Create the flask app serving every revision registered in the given
    registry

    Args:
        registry:  SchemeRegistry
            The registry holding types, conversions and admission callbacks

    Returns:
        app:  Flask
            The configured application
    """
    app = Flask(constants.MANAGED_BY)

    for api_version in registry.api_versions:
        mutate_path = webhook_path("mutate", api_version)
        validate_path = webhook_path("validate", api_version)
        log.debug("Serving %s and %s", mutate_path, validate_path)
        app.add_url_rule(
            mutate_path,
            endpoint=mutate_path,
            view_func=_review_view(registry, handle_mutate),
            methods=["POST"],
        )
        app.add_url_rule(
            validate_path,
            endpoint=validate_path,
            view_func=_review_view(registry, handle_validate),
            methods=["POST"],
        )

    app.add_url_rule(
        CONVERT_PATH,
        endpoint="convert",
        view_func=_review_view(registry, handle_convert),
        methods=["POST"],
    )

    @app.route("/healthz")
    def healthz():
        return "ok"

    @app.route("/readyz")
    def readyz():
        return "ok"

    return app


def _review_view(registry, handler):
    def view():
        review = request.get_json(silent=True)
        if not isinstance(review, dict):
            return jsonify({"error": "request body must be a JSON object"}), 400
        return jsonify(handler(registry, review))

    return view
