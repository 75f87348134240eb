"""
Request/response helpers shared by the dispatch tests.
"""

import json

from api_contracts import ApiRequest


def call(service, method, path, query="", headers=None, body=b""):
    """Run one request through the service's dispatch table."""
    return service.handle(ApiRequest.build(method, path, query, headers or {}, body))


def json_body(response):
    return json.loads(response.body)


def header(response, name):
    for key, value in response.headers:
        if key.lower() == name.lower():
            return value
    return None
