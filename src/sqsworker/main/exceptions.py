class SqsWorkerError(Exception):
    """Base exception for the worker daemon."""

    def __init__(self, message: str, code: str = "SQS_WORKER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ConfigurationError(SqsWorkerError):
    """Raised for invalid or missing configuration at startup or reload."""

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION")


class HandlerLoadError(ConfigurationError):
    """Raised when the configured message handler cannot be imported."""

    def __init__(self, handler_path: str, details: str = ""):
        self.handler_path = handler_path
        message = f"could not load message handler '{handler_path}'"
        if details:
            message = f"{message}: {details}"
        super().__init__(message)


class QueueTransportError(SqsWorkerError):
    """Raised when the remote queue cannot be reached or rejects a call."""

    def __init__(self, operation: str, details: str = ""):
        self.operation = operation
        message = f"queue operation '{operation}' failed"
        if details:
            message = f"{message}: {details}"
        super().__init__(message, "QUEUE_TRANSPORT")


class IdempotencyStoreError(SqsWorkerError):
    """Raised when the idempotency store cannot be reached."""

    def __init__(self, operation: str, details: str = ""):
        self.operation = operation
        message = f"idempotency store operation '{operation}' failed"
        if details:
            message = f"{message}: {details}"
        super().__init__(message, "IDEMPOTENCY_STORE")
