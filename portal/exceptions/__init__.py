"""Custom exceptions for the wholesale portal."""


class PortalError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(PortalError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(PortalError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class InvalidTransitionError(BusinessLogicError):
    """Raised when an order stage or status change is not allowed from its current state."""
    def __init__(self, message, current=None, requested=None):
        payload = {}
        if current is not None:
            payload['current'] = current
        if requested is not None:
            payload['requested'] = requested
        super().__init__(message, status_code=409, payload=payload or None)


class ScopeViolationError(PortalError):
    """
    Raised when an operation has no resolvable active company, or targets a
    company outside the caller's membership / impersonation context.

    400 means "no company selected", 403 means "company not accessible".
    """
    def __init__(self, message="Nenhuma empresa ativa selecionada", status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class ValidationError(PortalError):
    """Raised at the input boundary for malformed quantities, prices or discount values."""
    def __init__(self, message, field=None):
        super().__init__(message, 422, {'field': field} if field else None)
        self.field = field


class UnauthorizedError(PortalError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)


class DocumentGenerationError(PortalError):
    """Raised when the order print document could not be produced."""
    def __init__(self, message="Falha ao gerar documento do pedido"):
        super().__init__(message, 502)
