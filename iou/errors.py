class LedgerServiceError(Exception):
    pass


class NotFoundError(LedgerServiceError):
    pass


class ForbiddenError(LedgerServiceError):
    pass


class InvalidOperationError(LedgerServiceError):
    pass


class DuplicateKeyError(InvalidOperationError):
    pass


class UnauthenticatedError(LedgerServiceError):
    pass
