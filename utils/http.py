import os
import json
from datetime import date, datetime

import azure.functions as func
from bson import ObjectId


def cors_headers():
    return {
        "Access-Control-Allow-Origin": os.getenv("ALLOWED_ORIGIN", "*"),
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization, X-User-Email",
    }


def json_serial(obj):
    """JSON serializer for objects not serializable by default json code"""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, tuple):
        return list(obj)
    raise TypeError(f"Type {type(obj)} not serializable")


def respond(body=None, status=200):
    return func.HttpResponse(
        json.dumps(body, default=json_serial) if body is not None else "",
        status_code=status,
        mimetype="application/json",
        headers=cors_headers(),
    )


def error_response(message, status=400):
    return respond({"error": message}, status=status)


def options_response():
    return func.HttpResponse("", status_code=204, headers=cors_headers())


def read_json(req: func.HttpRequest):
    """Returns the parsed body or None when it is missing or not valid JSON."""
    try:
        body = req.get_json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None
