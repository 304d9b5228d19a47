"""Exceptions shared by the storage, scheduling and moderation layers."""


class StorageUnavailable(Exception):
    """The database could not be reached or rejected the operation.

    Fatal to the in-flight operation: nothing was recorded and the caller
    must not assume it happened.
    """


class SchedulingFailure(Exception):
    """A moderation timer could not be armed.

    The action it belongs to is still logged but will not expire on its own.
    """


class ReversalFailed(Exception):
    """An expired action could not be lifted on the chat platform.

    The timeout stays pending and is retried.
    """
