"""
This module implements custom exceptions
"""

# Standard
from typing import List, Optional

## Base Error ##################################################################


class MemcachedOperatorError(Exception):
    """Base class for all memcached_operator exceptions"""

    def __init__(self, message: str, is_fatal_error: bool):
        """Construct with a flag indicating whether this is a fatal error. This
        will be a static property of all children.
        """
        super().__init__(message)
        self._is_fatal_error = is_fatal_error

    @property
    def is_fatal_error(self):
        """Property indicating whether or not this error should stop retries
        for the resource that raised it
        """
        return self._is_fatal_error


## Fatal Errors ################################################################


class MemcachedOperatorFatalError(MemcachedOperatorError):
    """A fatal error is one that indicates an unexpected, and likely
    unrecoverable, failure that retrying will not fix
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=True)


class ConfigError(MemcachedOperatorFatalError):
    """Exception caused by invalid library configuration"""


class ConversionError(MemcachedOperatorFatalError):
    """Exception raised when a document cannot be converted between schema
    revisions, either because of a type mismatch or a malformed source
    """


class TerminalReconcileError(MemcachedOperatorFatalError):
    """Exception raised when child objects cannot be built from a stored
    resource. It is recorded on the resource status and not retried until the
    resource changes again.
    """


## Expected Errors #############################################################


class MemcachedOperatorExpectedError(MemcachedOperatorError):
    """An expected error is one that indicates a failure condition that is
    expected to resolve on its own or by user action
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=False)


class TransientReconcileError(MemcachedOperatorExpectedError):
    """Exception raised when a cluster operation fails in a way that should be
    retried (conflict, timeout, temporary unavailability)
    """


class ValidationError(MemcachedOperatorExpectedError):
    """Exception holding the aggregated list of field violations found when
    validating a desired-state document
    """

    def __init__(
        self,
        name: str,
        violations: List["FieldViolation"],  # noqa: F821
        group_kind: Optional[str] = None,
    ):
        self.name = name
        self.violations = list(violations)
        self.group_kind = group_kind or "Memcached.memcached.c5c3.io"
        if len(self.violations) == 1:
            details = str(self.violations[0])
        else:
            details = "[" + ", ".join(str(v) for v in self.violations) + "]"
        super().__init__(f'{self.group_kind} "{name}" is invalid: {details}')


## Assertions ##################################################################


def assert_config(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ConfigError. This should be
    used when checking values read from the library configuration.
    """
    if not condition:
        raise ConfigError(message)


def assert_cluster(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a TransientReconcileError. This
    should be used when an operation in the cluster (such as fetching an
    existing object) must succeed before continuing.
    """
    if not condition:
        raise TransientReconcileError(message)


def assert_buildable(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a TerminalReconcileError. This
    should be used when building child objects from a stored resource.
    """
    if not condition:
        raise TerminalReconcileError(message)
