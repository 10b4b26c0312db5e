"""
AWS Lambda handler for the Billing Engine API.

This is the production entry point for AWS Lambda deployments.
For local development, use main.py (Flask app) instead.
"""

import base64
import json
import logging
import os
import re
from urllib.parse import unquote

from billing_engine import BillingEngine, BillingError, ValidationFailedError

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Environment (dev, staging, prod)
ENVIRONMENT = os.environ.get("ENVIRONMENT", "dev")

# Initialize engine (reused across warm invocations)
engine = BillingEngine()

# CORS headers for API Gateway
CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}


def _response(status_code, payload):
    return {"statusCode": status_code, "headers": CORS_HEADERS, "body": json.dumps(payload)}


def _parse_body(event):
    """Decode the request body; supports base64 bodies from API Gateway."""
    body = event.get("body", "")
    if isinstance(body, str):
        if not body:
            raise ValidationFailedError("No input data provided", code="NO_INPUT")
        if event.get("isBase64Encoded"):
            body = base64.b64decode(body).decode("utf-8")
        body = json.loads(body)
    if not body:
        raise ValidationFailedError("No input data provided", code="NO_INPUT")
    return body


def _optional_body(event):
    if not event.get("body"):
        return {}
    return _parse_body(event)


# =============================================================================
# ROUTE HANDLERS
# =============================================================================

def handle_health(event):
    """Health check endpoint."""
    return _response(200, {"status": "healthy", "environment": ENVIRONMENT})


def handle_api_info(event):
    """API information endpoint."""
    return _response(
        200,
        {
            "status": "ok",
            "message": "Billing Engine API",
            "version": "1.0",
            "environment": ENVIRONMENT,
            "runtime": "AWS Lambda",
            "endpoints": [f"{path} [{method}]" for method, path, _, _ in ROUTES],
        },
    )


def handle_create_payment(event):
    input_data = _parse_body(event)
    logger.info(f"Creating payment for org: {input_data.get('org_id', 'Unknown')}")
    return _response(201, engine.create_payment(input_data))


def handle_get_payment(event, payment_id):
    return _response(200, engine.get_payment(payment_id))


def handle_process_payment(event, payment_id):
    """Confirm a pending payment and provision its subscription."""
    input_data = _parse_body(event)
    engine.validator.require_fields(input_data, "payment_intent_id")

    logger.info(f"Processing payment: {payment_id}")
    result = engine.process_payment(payment_id, input_data["payment_intent_id"])
    logger.info(f"Payment processed successfully: {payment_id}")

    return _response(200, result)


def handle_cancel_payment(event, payment_id):
    return _response(200, engine.cancel_payment(payment_id))


def handle_calculate_refund(event, payment_id):
    return _response(200, engine.calculate_refund(payment_id))


def handle_process_refund(event, payment_id):
    input_data = _parse_body(event)
    engine.validator.require_fields(input_data, "reason")
    return _response(200, engine.process_refund(payment_id, input_data["reason"]))


def handle_referral_conversion(event, payment_id):
    return _response(200, engine.process_referral_conversion(payment_id))


def handle_validate_partner_code(event, code):
    return _response(200, engine.validate_partner_code(code))


def handle_create_partner(event):
    return _response(201, engine.create_partner(_parse_body(event)))


def handle_get_partner(event, partner_id):
    return _response(200, engine.get_partner(partner_id))


def handle_create_partner_code(event, partner_id):
    return _response(201, engine.create_partner_code(partner_id, _optional_body(event)))


def handle_commission_payment(event, partner_id):
    return _response(200, engine.process_commission_payment(partner_id, _parse_body(event)))


def handle_commission_summary(event, partner_id):
    return _response(200, engine.get_commission_summary(partner_id))


def handle_referral_attribution(event):
    input_data = _parse_body(event)
    engine.validator.require_fields(input_data, "code", "user_email")
    return _response(201, engine.process_referral_attribution(input_data["code"], input_data["user_email"]))


def handle_calculate_commission(event):
    input_data = _parse_body(event)
    engine.validator.require_fields(input_data, "partner_id", "payment_id")
    return _response(200, engine.calculate_commission(input_data["partner_id"], input_data["payment_id"]))


def handle_tiers(event):
    return _response(200, engine.get_available_tiers())


def handle_get_subscription(event, org_id):
    return _response(200, engine.get_subscription(org_id))


def handle_upgrade_subscription(event, org_id):
    input_data = _parse_body(event)
    engine.validator.require_fields(input_data, "target_tier")
    return _response(200, engine.upgrade_subscription(org_id, input_data["target_tier"]))


def handle_feature_access(event, org_id, feature):
    return _response(200, engine.validate_feature_access(org_id, feature))


# First match wins
_ROUTE_TABLE = [
    ("GET", "/health", handle_health),
    ("GET", "/api", handle_api_info),
    ("POST", "/payments", handle_create_payment),
    ("GET", "/payments/{payment_id}", handle_get_payment),
    ("POST", "/payments/{payment_id}/process", handle_process_payment),
    ("POST", "/payments/{payment_id}/cancel", handle_cancel_payment),
    ("GET", "/payments/{payment_id}/refund", handle_calculate_refund),
    ("POST", "/payments/{payment_id}/refund", handle_process_refund),
    ("POST", "/payments/{payment_id}/referral-conversion", handle_referral_conversion),
    ("GET", "/partner-codes/{code}/validate", handle_validate_partner_code),
    ("POST", "/partners", handle_create_partner),
    ("GET", "/partners/{partner_id}", handle_get_partner),
    ("POST", "/partners/{partner_id}/codes", handle_create_partner_code),
    ("POST", "/partners/{partner_id}/commission-payments", handle_commission_payment),
    ("GET", "/partners/{partner_id}/commission-summary", handle_commission_summary),
    ("POST", "/referrals", handle_referral_attribution),
    ("POST", "/commissions/calculate", handle_calculate_commission),
    ("GET", "/subscriptions/tiers", handle_tiers),
    ("GET", "/subscriptions/{org_id}", handle_get_subscription),
    ("POST", "/subscriptions/{org_id}/upgrade", handle_upgrade_subscription),
    ("GET", "/subscriptions/{org_id}/features/{feature}", handle_feature_access),
]


def _compile(template):
    return re.compile("^" + re.sub(r"\{(\w+)\}", r"([^/]+)", template) + "/?$")


ROUTES = [(method, path, _compile(path), handler) for method, path, handler in _ROUTE_TABLE]


def lambda_handler(event, context):
    """
    Main Lambda entry point.

    Handles API Gateway events (REST API and HTTP API formats) for every
    route in ROUTES, plus OPTIONS for CORS preflight.
    """
    # Handle CORS preflight
    http_method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "")
    if http_method == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    # Get path (supports both REST API and HTTP API formats)
    path = event.get("path") or event.get("rawPath", "")

    for method, _, pattern, handler in ROUTES:
        if method != http_method:
            continue
        match = pattern.match(path)
        if match:
            return dispatch(handler, event, [unquote(p) for p in match.groups()])

    return _response(404, {"error": "Not found", "path": path})


def dispatch(handler, event, params):
    """Run a route handler and map errors to API Gateway responses."""
    try:
        return handler(event, *params)

    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {str(e)}")
        return _response(
            400,
            {
                "error": f"Invalid JSON: {str(e)}",
                "code": "INVALID_JSON",
                "kind": "validation_failed",
                "status": "validation_failed",
            },
        )

    except BillingError as e:
        logger.error(f"{e.kind} error: {e.message}")
        body = e.to_dict()
        body["status"] = e.kind
        return _response(e.status_code, body)

    except (ValueError, KeyError, TypeError) as e:
        # Missing fields, invalid types, etc.
        logger.error(f"Validation error: {str(e)}")
        return _response(
            400,
            {
                "error": f"Validation error: {str(e)}",
                "code": "VALIDATION_FAILED",
                "kind": "validation_failed",
                "status": "validation_failed",
            },
        )

    except Exception as e:
        # Unexpected errors - log details but return generic message
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return _response(
            500,
            {
                "error": "An unexpected error occurred during processing",
                "code": "INTERNAL_ERROR",
                "kind": "internal",
                "status": "failed",
            },
        )
