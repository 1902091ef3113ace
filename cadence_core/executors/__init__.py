"""Executors that deliver scheduled actions."""

from .base import ActionExecutor, CallbackExecutor, ExecutorCallback
from .smtp import SmtpEmailExecutor

__all__ = [
    "ActionExecutor",
    "CallbackExecutor",
    "ExecutorCallback",
    "SmtpEmailExecutor",
]
