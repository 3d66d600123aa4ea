# Overview: Maps service-layer exceptions to JSON error responses.

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException

from .services.appointments_service import AppointmentNotFoundError, UnavailabilityNotFoundError
from .services.auth_service import PasswordValidationError, UserNotFoundError
from .services.expenses_service import ExpenseCategoryNotFoundError, ExpenseNotFoundError
from .services.inventory_service import InventoryItemNotFoundError
from .services.patients_service import PatientNotFoundError
from .services.payment_service import PaymentNotFoundError
from .services.payment_plan_service import PaymentPlanNotFoundError
from .services.permission_service import PermissionDeniedError
from .services.products_service import ProductNotFoundError
from .services.sales_service import InsufficientStockError, SaleError
from .services.session_service import NotAuthenticatedError
from .validation import ConflictError, ValidationError


NOT_FOUND_ERRORS = (
    ProductNotFoundError,
    InventoryItemNotFoundError,
    PatientNotFoundError,
    PaymentPlanNotFoundError,
    PaymentNotFoundError,
    UserNotFoundError,
    AppointmentNotFoundError,
    UnavailabilityNotFoundError,
    ExpenseNotFoundError,
    ExpenseCategoryNotFoundError,
)


def register_error_handlers(app) -> None:
    @app.errorhandler(NotAuthenticatedError)
    def handle_not_authenticated(e):
        return jsonify({"error": "Not authenticated"}), 401

    @app.errorhandler(PermissionDeniedError)
    def handle_permission_denied(e):
        return jsonify({"error": str(e) or "Unauthorized"}), 403

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"error": str(e), "errors": e.errors}), 400

    @app.errorhandler(PasswordValidationError)
    def handle_password_error(e):
        return jsonify({"error": str(e)}), 400

    for exc_class in NOT_FOUND_ERRORS:
        app.register_error_handler(exc_class, lambda e: (jsonify({"error": str(e)}), 404))

    @app.errorhandler(ConflictError)
    def handle_conflict(e):
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(InsufficientStockError)
    def handle_insufficient_stock(e):
        return jsonify({"error": str(e), "details": e.details}), 409

    @app.errorhandler(SaleError)
    def handle_sale_error(e):
        return jsonify({"error": str(e)}), 500

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        current_app.logger.exception("Unhandled error")
        return jsonify({"error": "Internal server error"}), 500
