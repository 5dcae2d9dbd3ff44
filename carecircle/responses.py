import json

CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Accept, Authorization",
}


def _response(status_code: int, payload: dict):
    return {
        "statusCode": status_code,
        "headers": CORS_HEADERS,
        "body": json.dumps(payload, default=str),
    }


def success(data, status_code: int = 200):
    """API Gateway proxy response wrapping `data`."""
    return _response(status_code, {"data": data})


def error(code: str, message: str, status_code: int = 400):
    return _response(status_code, {"error": {"code": code, "message": message}})


def unauthorized(message: str = "Missing user context"):
    return error("UNAUTHORIZED", message, status_code=401)


def forbidden(message: str):
    return error("FORBIDDEN", message, status_code=403)
