"""
Flask adapter - serves a built ApiService from a Flask app.

Provides:
- A catch-all route that hands every request under url_prefix to the
  service's dispatch table
- The document at /openapi.json and /openapi.yaml (configurable)

Usage:
    service = api.build()
    app = create_app(service)
    # or, on an existing app:
    mount(app, service, url_prefix="/api")
"""

import logging
from dataclasses import replace
from typing import Optional

from flask import Flask, Response, request

from .config import Config
from .document import ApiService
from .request import ApiRequest
from .responses import EncodedResponse

logger = logging.getLogger('api.contracts.flask')

ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE"]


def to_flask_response(encoded: EncodedResponse) -> Response:
    response = Response(encoded.body, status=encoded.status)
    if encoded.content_type:
        response.headers["Content-Type"] = encoded.content_type
    else:
        response.headers.pop("Content-Type", None)
    for name, value in encoded.headers:
        response.headers.add(name, value)
    return response


def mount(
    app: Flask,
    service: ApiService,
    url_prefix: str = "",
    spec_json_path: Optional[str] = None,
    spec_yaml_path: Optional[str] = None,
) -> None:
    """
    Mount service on app.

    Args:
        app: Flask application instance
        service: Built service
        url_prefix: Path prefix stripped before dispatch (e.g. "/api")
        spec_json_path: Document endpoint (default Config.SPEC_JSON_PATH)
        spec_yaml_path: Document endpoint (default Config.SPEC_YAML_PATH)
    """
    prefix = url_prefix.rstrip("/")
    json_path = spec_json_path or Config.SPEC_JSON_PATH
    yaml_path = spec_yaml_path or Config.SPEC_YAML_PATH

    def openapi_json():
        return Response(service.spec_json, mimetype="application/json")

    def openapi_yaml():
        return Response(service.spec_yaml, mimetype="application/yaml")

    def dispatch(subpath: str = ""):
        api_request = ApiRequest.from_werkzeug(request)
        api_request = replace(api_request, path="/" + subpath)
        return to_flask_response(service.handle(api_request))

    app.add_url_rule(prefix + json_path, endpoint="openapi_json", view_func=openapi_json, methods=["GET"])
    app.add_url_rule(prefix + yaml_path, endpoint="openapi_yaml", view_func=openapi_yaml, methods=["GET"])
    app.add_url_rule(
        prefix + "/", endpoint="api_contracts_root", view_func=dispatch,
        methods=ROUTED_METHODS, provide_automatic_options=False,
    )
    app.add_url_rule(
        prefix + "/<path:subpath>", endpoint="api_contracts_dispatch", view_func=dispatch,
        methods=ROUTED_METHODS, provide_automatic_options=False,
    )
    logger.info(
        f"Mounted '{service.document.info.title}' at '{prefix or '/'}' "
        f"({len(service.dispatch)} operations, document at {prefix + json_path})"
    )


def create_app(service: ApiService, url_prefix: str = "") -> Flask:
    """Create a Flask app serving only service."""
    app = Flask(__name__)
    mount(app, service, url_prefix=url_prefix)
    return app
