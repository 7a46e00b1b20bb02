"""Custom exception hierarchy for payplan."""


class PayPlanError(Exception):
    """Base exception for all payplan errors."""

    user_message = "Não foi possível concluir a operação"


class ExtractionIncompleteError(PayPlanError):
    """Raised when no usable financial terms exist in a document payload.

    Never escapes the resolver: it is converted into default terms.
    """

    user_message = "Dados financeiros incompletos no documento"


class StoreUnavailableError(PayPlanError):
    """Raised when the document store cannot be reached or rejects a call."""

    user_message = "Não foi possível acessar os dados financeiros"


class RecordNotFoundError(PayPlanError):
    """Raised when a referenced row does not exist in the store."""

    user_message = "Registro financeiro não encontrado"


class ValidationFailedError(PayPlanError):
    """Raised when an operation is attempted with invalid input or state."""

    user_message = "Não foi possível salvar os dados financeiros"


class InvalidTransitionError(ValidationFailedError):
    """Raised when an operation is not allowed in the subject's current state."""

    user_message = "Operação não permitida no estado atual"


class ConfirmationRequiredError(ValidationFailedError):
    """Raised when a destructive operation is called without confirmation."""

    user_message = "Confirme a operação antes de continuar"


class PartialWriteFailureError(PayPlanError):
    """Raised when some installment writes of a save batch failed.

    Rows written before the failure are not rolled back.
    """

    user_message = "Algumas parcelas não foram salvas"

    def __init__(self, message: str, failed_numbers: list[int] | None = None) -> None:
        super().__init__(message)
        self.failed_numbers = sorted(failed_numbers or [])


class ConfigurationError(PayPlanError):
    """Raised when configuration is invalid or missing."""


class SinkError(PayPlanError):
    """Raised when an audit sink operation fails."""
