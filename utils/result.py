from typing import Generic, TypeVar, Optional, Callable, Any, Dict, Union
from http import HTTPStatus

T = TypeVar('T')
U = TypeVar('U')

StatusCode = Union[int, HTTPStatus]


class Result(Generic[T]):
    """
    Outcome of a reader or writer step, carrying the HTTP status the API
    answers with when the step fails.

    Attributes:
        success (bool): Whether the step produced data
        data (Optional[T]): The produced value, set on success only
        error (Optional[str]): Explanation of the failure, set on failure only
        status_code (HTTPStatus): 200 by default on success, 400 on failure
    """
    def __init__(self, success: bool, data: Optional[T] = None, error: Optional[str] = None,
                 status_code: Optional[StatusCode] = None):
        self.success = success
        self.data = data
        self.error = error
        if status_code is None:
            status_code = HTTPStatus.OK if success else HTTPStatus.BAD_REQUEST
        self.status_code = HTTPStatus(status_code)

    @classmethod
    def ok(cls, data: T) -> "Result[T]":
        return cls(True, data=data)

    @classmethod
    def fail(cls, error: str, status_code: StatusCode = HTTPStatus.BAD_REQUEST) -> "Result[T]":
        """
        Wrap a failure.

        Args:
            error (str): Message returned to the caller
            status_code (StatusCode, optional): Status of the error response. Defaults to 400.
        """
        return cls(False, error=error, status_code=status_code)

    @classmethod
    def not_found(cls, error: str) -> "Result[T]":
        return cls.fail(error, HTTPStatus.NOT_FOUND)

    @classmethod
    def invalid_input(cls, error: str) -> "Result[T]":
        """Failure caused by request parameters, a selection or an unwritable table (400)."""
        return cls.fail(error, HTTPStatus.BAD_REQUEST)

    @classmethod
    def server_error(cls, error: str) -> "Result[T]":
        return cls.fail(error, HTTPStatus.INTERNAL_SERVER_ERROR)

    def is_success(self) -> bool:
        return self.success

    def is_failure(self) -> bool:
        return not self.success

    def and_then(self, fn: Callable[[T], "Result[U]"]) -> "Result[U]":
        """
        Feed the data of a successful Result into the next step.

        A failure skips ``fn`` and is passed on with its message and status.
        """
        if self.is_failure():
            return Result.fail(self.error or "", self.status_code)
        return fn(self.data)  # type: ignore

    def on_failure(self, fn: Callable[[str], None]) -> "Result[T]":
        """Call ``fn`` with the error message when this is a failure; return self."""
        if self.is_failure():
            fn(self.error or "")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """
        Body of the JSON response for this Result.

        Returns:
            Dict[str, Any]: success flag, numeric status and phrase, then
            ``data`` or ``error``
        """
        body: Dict[str, Any] = {
            "success": self.success,
            "status_code": self.status_code.value,
            "status": self.status_code.phrase,
        }
        if self.success:
            body["data"] = self.data
        else:
            body["error"] = self.error
        return body
