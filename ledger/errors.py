class LedgerServiceError(Exception):
    code = "ledger_error"


class UserNotFoundError(LedgerServiceError):
    code = "user_not_found"


class InvalidAmountError(LedgerServiceError):
    code = "invalid_amount"


class AmountTooSmallError(LedgerServiceError):
    code = "amount_too_small"


class InvalidKindError(LedgerServiceError):
    code = "invalid_kind"


class InvalidCursorError(LedgerServiceError):
    code = "invalid_cursor"
