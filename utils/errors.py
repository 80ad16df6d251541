# HEARTH v1.0 - Error taxonomy


class HearthError(Exception):
    '''Base class for all engine errors'''


class ReadinessTimeout(HearthError):
    '''A service did not become ready before the deadline'''

    def __init__(self, target, timeout, last_error=None):
        self.target = target
        self.timeout = timeout
        self.last_error = last_error
        message = f"timeout waiting for {target} after {timeout:g}s"
        if last_error:
            message += f" (last error: {last_error})"
        super().__init__(message)


class WaitCancelled(HearthError):
    '''A readiness wait was cancelled from outside'''

    def __init__(self, target):
        self.target = target
        super().__init__(f"wait for {target} cancelled")


class ConfigConflictError(HearthError):
    '''Existing state does not match what a hook expected'''


class StorageError(HearthError):
    '''A file, database or socket operation failed'''

    def __init__(self, operation, target, cause=None):
        self.operation = operation
        self.target = str(target)
        self.cause = cause
        message = f"{operation} {self.target}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class ContractError(HearthError):
    '''An operation was asked for something the engine cannot provide, such as
    an unknown app or a secret derived before the bundle is loaded'''


class ValidationError(HearthError):
    '''Invalid install request or integration choice'''
