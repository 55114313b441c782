"""Exceptions for the control API (RFC 9457 Problem Details) and the workers."""

from typing import Any, Dict, Optional
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
import uuid

from .clock import utcnow


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        merged = {"resource_type": resource_type}
        if resource_id:
            merged["resource_id"] = resource_id
        merged.update(extensions or {})

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="urn:roombroker:problem:resource-not-found",
            instance=instance,
            extensions=merged,
        )


class WorkerNotFoundError(NotFoundError):
    """Raised when a control operation names a worker that is not registered."""

    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = list(available)
        super().__init__(
            resource_type="worker",
            resource_id=name,
            detail=f"Worker not found: {name}. Available: {', '.join(self.available)}",
            extensions={"available_workers": self.available},
        )


class InternalServerError(ProblemDetailsException):
    """Exception for internal server errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred while processing the request",
        error_id: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not error_id:
            error_id = str(uuid.uuid4())

        extensions = {
            "error_id": error_id,
            "timestamp": utcnow().isoformat() + "Z",
        }

        super().__init__(
            status_code=500,
            title="Internal Server Error",
            detail=detail,
            type_uri="urn:roombroker:problem:internal-server-error",
            instance=instance,
            extensions=extensions,
        )


# Worker-side exceptions. These never cross the HTTP boundary; the worker
# base class catches and records them.

class RoomBrokerError(Exception):
    """Base class for errors raised inside worker logic."""


class SupplierError(RoomBrokerError):
    """An upstream supplier call returned a failure."""

    def __init__(self, supplier: str, operation: str, message: Optional[str] = None):
        self.supplier = supplier
        self.operation = operation
        super().__init__(f"{operation} via {supplier} failed: {message or 'unknown error'}")


class PurchaseError(RoomBrokerError):
    """A live purchase could not be carried out."""


class ChannelPushError(RoomBrokerError):
    """A downstream push did not succeed."""


class CancellationError(RoomBrokerError):
    """An upstream cancellation could not be completed."""


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error = InternalServerError(instance=str(request.url))
    return JSONResponse(
        status_code=500,
        content=error.problem_details,
    )
