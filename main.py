from flask import Flask, request, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from billing_engine import BillingEngine, BillingError, ValidationFailedError
import os
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Enable CORS for all routes
CORS(app)

# Initialize the billing engine
engine = BillingEngine()


def _json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    if not data:
        raise ValidationFailedError("No input data provided", code='NO_INPUT')
    return data


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.errorhandler(BillingError)
def handle_billing_error(e):
    """Engine errors carry their own status code"""
    logger.error(f"{e.kind} error: {e.message}")
    body = e.to_dict()
    body["status"] = e.kind
    return jsonify(body), e.status_code


@app.errorhandler(HTTPException)
def handle_http_error(e):
    kind = "validation_failed" if e.code == 400 else "http_error"
    return jsonify({
        "error": e.description,
        "code": e.name.upper().replace(" ", "_"),
        "kind": kind,
        "status": kind
    }), e.code


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, (KeyError, TypeError, ValueError)):
        # Missing fields or invalid types in the request body
        logger.error(f"Validation error: {str(e)}")
        return jsonify({
            "error": f"Validation error: {str(e)}",
            "code": "VALIDATION_FAILED",
            "kind": "validation_failed",
            "status": "validation_failed"
        }), 400

    # Log details but return a generic message
    logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
    return jsonify({
        "error": "An unexpected error occurred during processing",
        "code": "INTERNAL_ERROR",
        "kind": "internal",
        "status": "failed"
    }), 500


# =============================================================================
# SERVICE
# =============================================================================

@app.route("/", methods=["GET"])
@app.route("/api", methods=["GET"])
def api_info():
    """API information endpoint"""
    return jsonify({
        "status": "ok",
        "message": "Billing Engine API",
        "version": "1.0",
        "environment": engine.settings.environment,
        "endpoints": {
            "health": "/health [GET]",
            "payments": "/payments [POST]",
            "payment": "/payments/<payment_id> [GET]",
            "process_payment": "/payments/<payment_id>/process [POST]",
            "cancel_payment": "/payments/<payment_id>/cancel [POST]",
            "refund": "/payments/<payment_id>/refund [GET, POST]",
            "referral_conversion": "/payments/<payment_id>/referral-conversion [POST]",
            "validate_partner_code": "/partner-codes/<code>/validate [GET]",
            "partners": "/partners [POST]",
            "partner": "/partners/<partner_id> [GET]",
            "partner_codes": "/partners/<partner_id>/codes [POST]",
            "commission_payments": "/partners/<partner_id>/commission-payments [POST]",
            "commission_summary": "/partners/<partner_id>/commission-summary [GET]",
            "referrals": "/referrals [POST]",
            "calculate_commission": "/commissions/calculate [POST]",
            "tiers": "/subscriptions/tiers [GET]",
            "subscription": "/subscriptions/<org_id> [GET]",
            "upgrade": "/subscriptions/<org_id>/upgrade [POST]",
            "feature_access": "/subscriptions/<org_id>/features/<feature> [GET]"
        }
    }), 200


@app.route("/health", methods=["GET"])
def health():
    """Health check for monitoring"""
    return jsonify({"status": "healthy"}), 200


# =============================================================================
# PAYMENTS
# =============================================================================

@app.route("/payments", methods=["POST"])
def create_payment():
    input_data = _json_body()
    logger.info(f"Creating payment for org: {input_data.get('org_id', 'Unknown')}")
    return jsonify(engine.create_payment(input_data)), 201


@app.route("/payments/<payment_id>", methods=["GET"])
def get_payment(payment_id):
    return jsonify(engine.get_payment(payment_id)), 200


@app.route("/payments/<payment_id>/process", methods=["POST"])
def process_payment(payment_id):
    """
    Confirm a pending payment and provision its subscription
    """
    input_data = _json_body()
    engine.validator.require_fields(input_data, "payment_intent_id")

    logger.info(f"Processing payment: {payment_id}")
    result = engine.process_payment(payment_id, input_data["payment_intent_id"])
    logger.info(f"Payment processed successfully: {payment_id}")

    return jsonify(result), 200


@app.route("/payments/<payment_id>/cancel", methods=["POST"])
def cancel_payment(payment_id):
    return jsonify(engine.cancel_payment(payment_id)), 200


@app.route("/payments/<payment_id>/refund", methods=["GET", "POST"])
def refund(payment_id):
    """GET previews the refund, POST executes it"""
    if request.method == "GET":
        return jsonify(engine.calculate_refund(payment_id)), 200

    input_data = _json_body()
    engine.validator.require_fields(input_data, "reason")
    return jsonify(engine.process_refund(payment_id, input_data["reason"])), 200


@app.route("/payments/<payment_id>/referral-conversion", methods=["POST"])
def referral_conversion(payment_id):
    return jsonify(engine.process_referral_conversion(payment_id)), 200


# =============================================================================
# PARTNERS
# =============================================================================

@app.route("/partner-codes/<code>/validate", methods=["GET"])
def validate_partner_code(code):
    return jsonify(engine.validate_partner_code(code)), 200


@app.route("/partners", methods=["POST"])
def create_partner():
    return jsonify(engine.create_partner(_json_body())), 201


@app.route("/partners/<partner_id>", methods=["GET"])
def get_partner(partner_id):
    return jsonify(engine.get_partner(partner_id)), 200


@app.route("/partners/<partner_id>/codes", methods=["POST"])
def create_partner_code(partner_id):
    input_data = request.get_json(force=True, silent=True) or {}
    return jsonify(engine.create_partner_code(partner_id, input_data)), 201


@app.route("/partners/<partner_id>/commission-payments", methods=["POST"])
def commission_payment(partner_id):
    return jsonify(engine.process_commission_payment(partner_id, _json_body())), 200


@app.route("/partners/<partner_id>/commission-summary", methods=["GET"])
def commission_summary(partner_id):
    return jsonify(engine.get_commission_summary(partner_id)), 200


@app.route("/referrals", methods=["POST"])
def referral_attribution():
    input_data = _json_body()
    engine.validator.require_fields(input_data, "code", "user_email")
    result = engine.process_referral_attribution(input_data["code"], input_data["user_email"])
    return jsonify(result), 201


@app.route("/commissions/calculate", methods=["POST"])
def calculate_commission():
    input_data = _json_body()
    engine.validator.require_fields(input_data, "partner_id", "payment_id")
    return jsonify(engine.calculate_commission(input_data["partner_id"], input_data["payment_id"])), 200


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

@app.route("/subscriptions/tiers", methods=["GET"])
def tiers():
    return jsonify(engine.get_available_tiers()), 200


@app.route("/subscriptions/<org_id>", methods=["GET"])
def get_subscription(org_id):
    return jsonify(engine.get_subscription(org_id)), 200


@app.route("/subscriptions/<org_id>/upgrade", methods=["POST"])
def upgrade_subscription(org_id):
    input_data = _json_body()
    engine.validator.require_fields(input_data, "target_tier")
    return jsonify(engine.upgrade_subscription(org_id, input_data["target_tier"])), 200


@app.route("/subscriptions/<org_id>/features/<feature>", methods=["GET"])
def feature_access(org_id, feature):
    return jsonify(engine.validate_feature_access(org_id, feature)), 200


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=False)
