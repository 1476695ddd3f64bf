"""Exceptions raised by the service layer.

Each carries a message that is safe to show to a chat user as-is.
"""

import asyncio

import aiohttp

# what an outbound REST call can raise: transport failures, timeouts, bad JSON
HTTP_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ValueError)


class ServiceError(Exception):
    default_message = "😕 Something went wrong. Please try again later."

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)
        self.user_message = message or self.default_message


class NotFoundError(ServiceError):
    default_message = "❌ Nothing found."


class AccessDeniedError(ServiceError):
    default_message = "❌ Access denied."


class UnavailableError(ServiceError):
    default_message = "😕 The service is unavailable right now. Please try again later."
