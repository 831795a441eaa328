import logging
import time
import typing
from enum import Enum
from typing import List, Optional, Tuple, Union

from urllib3 import BaseHTTPResponse  # type: ignore
from urllib3 import Retry
from urllib3.util.retry import RequestHistory

from databricks.sqlapi.exc import (
    MaxRetryDurationError,
    NonRecoverableNetworkError,
    UnsafeToRetryError,
)

logger = logging.getLogger(__name__)


class CommandType(Enum):
    EXECUTE_STATEMENT = "ExecuteStatement"
    GET_STATEMENT = "GetStatement"
    CANCEL_STATEMENT = "CancelStatement"
    GET_CHUNK = "GetChunk"
    GET_QUERY_METRICS = "GetQueryMetrics"
    OTHER = "Other"

    @classmethod
    def get(cls, value: str):
        value_name_map = {i.value: i.name for i in cls}
        valid_command = value_name_map.get(value, False)
        if valid_command:
            return getattr(cls, str(valid_command))
        else:
            return cls.OTHER


class StatementRetryPolicy(Retry):
    """
    Retry policy for Statement Execution API requests, built on urllib3's default retry behaviour.

    See `should_retry()` for details about what we do and do not retry.

    :param delay_min:
        Float of seconds for the minimum delay between retries. Passed to urllib3 as its
        backoff_factor.

    :param delay_max:
        Float of seconds for the maximum delay between retries. Passed to urllib3 as its
        backoff_max

    :param stop_after_attempts_count:
        Integer maximum number of attempts that will be retried. Passed to urllib3 as its
        total.

    :param stop_after_attempts_duration:
        Float of maximum number of seconds from the beginning of the first request that a
        request may be retried. This behaviour is not implemented in urllib3.

    :param force_dangerous_codes:
        List of integer HTTP status codes that will be retried even for ExecuteStatement,
        which is not idempotent. This is passed to urllib3 by extending its status_forcelist

    :param _retry_start_time:
        Float unix timestamp. Used to monitor the overall request duration across successive
        retries. Never set this value directly. Use self.start_retry_timer() instead. It is
        set by StatementHttpClient immediately before issuing a network request.

    :param _command_type:
        CommandType of the current request being retried. Used to modify retry behaviour based
        on the kind of API call being issued. Users never set this value directly. It is set by
        StatementHttpClient immediately before issuing a network request.

    :param urllib3_kwargs:
        Dictionary of arguments that are passed to Retry.__init__. Any setting of Retry() that
        this policy does not override or extend may be modified here.
    """

    RETRYABLE_STATUS_CODES = [429, 500, 502, 503, 504]
    SAFE_EXECUTE_STATUS_CODES = [429, 503]

    def __init__(
        self,
        delay_min: float,
        delay_max: float,
        stop_after_attempts_count: int,
        stop_after_attempts_duration: float,
        force_dangerous_codes: List[int],
        _retry_start_time: Optional[float] = None,
        _command_type: Optional[CommandType] = None,
        urllib3_kwargs: Optional[dict] = None,
    ):
        # These values do not change from one command to the next
        self.delay_max = delay_max
        self.delay_min = delay_min
        self.stop_after_attempts_count = stop_after_attempts_count
        self.stop_after_attempts_duration = stop_after_attempts_duration
        self.force_dangerous_codes = force_dangerous_codes

        # These values do change from one command to the next
        self._retry_start_time = _retry_start_time
        self.command_type = _command_type

        urllib3_kwargs = dict(urllib3_kwargs or {})

        # the length of _history increases as retries are performed
        _history: Union[Tuple[RequestHistory, ...], None] = urllib3_kwargs.get(
            "history"
        )

        if not _history:
            # no attempts were made so we can retry the current command as many times as specified by the user
            _attempts_remaining = self.stop_after_attempts_count
        else:
            # at least one of our attempts has been consumed, and urllib3 will have set a total
            _attempts_remaining = urllib3_kwargs.pop("total")

        _urllib_kwargs_we_care_about = dict(
            total=_attempts_remaining,
            respect_retry_after_header=True,
            backoff_factor=self.delay_min,
            backoff_max=self.delay_max,
            allowed_methods=["GET", "POST"],
            status_forcelist=[*self.RETRYABLE_STATUS_CODES, *self.force_dangerous_codes],
            # the final response is handed back to the client, which maps it to a typed error
            raise_on_status=False,
        )

        urllib3_kwargs.update(**_urllib_kwargs_we_care_about)

        super().__init__(
            **urllib3_kwargs,  # type: ignore
        )

    def new(self, **urllib3_incremented_counters: typing.Any) -> Retry:
        """Pass the entire Retry state to its next iteration.

        urllib3 calls Retry.new() between successive requests as part of its `.increment()` method.
        Since this subclass has a different __init__ signature and carries its own state, the method
        is overridden to pipe that state through while preserving the super-class's behaviour.
        """

        # These arguments will match the function signature for self.__init__
        policy_init_params = dict(
            delay_min=self.delay_min,
            delay_max=self.delay_max,
            stop_after_attempts_count=self.stop_after_attempts_count,
            stop_after_attempts_duration=self.stop_after_attempts_duration,
            force_dangerous_codes=self.force_dangerous_codes,
            _retry_start_time=self._retry_start_time,
            _command_type=self._command_type,
            urllib3_kwargs={},
        )

        # Gather urllib3's current retry state _before_ increment was called
        # These arguments match the function signature for super().__init__
        urllib3_init_params = dict(
            total=self.total,
            connect=self.connect,
            read=self.read,
            redirect=self.redirect,
            status=self.status,
            other=self.other,
            allowed_methods=self.allowed_methods,
            status_forcelist=self.status_forcelist,
            backoff_factor=self.backoff_factor,  # type: ignore
            backoff_max=self.backoff_max,  # type: ignore
            raise_on_redirect=self.raise_on_redirect,
            raise_on_status=self.raise_on_status,
            history=self.history,
            remove_headers_on_redirect=self.remove_headers_on_redirect,
            respect_retry_after_header=self.respect_retry_after_header,
            backoff_jitter=self.backoff_jitter,  # type: ignore
        )

        # Update urllib3's current state to reflect the incremented counters
        urllib3_init_params.update(**urllib3_incremented_counters)

        policy_init_params["urllib3_kwargs"].update(**urllib3_init_params)  # type: ignore

        return type(self)(
            **policy_init_params,  # type: ignore[arg-type]
        )

    @property
    def command_type(self) -> Optional[CommandType]:
        return self._command_type or None

    @command_type.setter
    def command_type(self, value: Optional[CommandType]):
        self._command_type = value

    def start_retry_timer(self):
        """Timer is used to monitor the overall time across successive requests

        Should only be called by StatementHttpClient before sending a request"""
        self._retry_start_time = time.time()

    def check_timer_duration(self):
        """Return time in seconds since the timer was started"""
        if self._retry_start_time is None:
            return 0.0
        return time.time() - self._retry_start_time

    def check_proposed_wait(self, proposed_wait: Union[int, float]) -> None:
        """Raise an exception if the proposed wait would exceed the configured max_attempts_duration"""

        proposed_overall_time = self.check_timer_duration() + proposed_wait
        if proposed_overall_time > self.stop_after_attempts_duration:
            raise MaxRetryDurationError(
                f"Retry request would exceed Retry policy max retry duration of {self.stop_after_attempts_duration} seconds"
            )

    def sleep_for_retry(self, response: BaseHTTPResponse) -> bool:  # type: ignore
        """Sleeps for the duration specified in the response Retry-After header, if present

        A MaxRetryDurationError will be raised if doing so would exceed self.max_attempts_duration

        This method is only called by urllib3 internals.
        """
        retry_after = self.get_retry_after(response)
        if retry_after:
            self.check_proposed_wait(retry_after)
            time.sleep(retry_after)
            return True

        return False

    def get_backoff_time(self) -> float:
        """Calls urllib3's built-in get_backoff_time.

        Never returns a value larger than self.delay_max
        A MaxRetryDurationError will be raised if the calculated backoff would exceed self.max_attempts_duration
        """

        proposed_backoff = super().get_backoff_time()
        proposed_backoff = min(proposed_backoff, self.delay_max)
        self.check_proposed_wait(proposed_backoff)

        return proposed_backoff

    def should_retry(self, method: str, status_code: int) -> Tuple[bool, str]:
        """This method encapsulates the client's approach to retries.

        A request is retried unless one of these conditions is met:

            1. The request received a 2xx status code. No retry is required.
            2. The request received a 501 (Not Implemented) status code. This request can never
               succeed.
            3. The HTTP method is not GET or POST.
            4. The request received a status code that is not transient: anything except 429,
               500, 502, 503, 504 and the configured force_dangerous_codes. This covers 401,
               which no amount of retrying will fix.
            5. The request CommandType was ExecuteStatement and the HTTP code is not 429 or 503
               or one of force_dangerous_codes. The statement may already be running on the
               server, and submitting it again would run it twice.

            6. OSErrors (handled automatically by urllib3 outside this method)
            7. Redirects (handled automatically by urllib3 outside this method)

        Returns True if the request should be retried. Returns False or raises an exception
        if a retry would violate the configured policy.
        """

        if 200 <= status_code < 300:
            return False, "2xx codes are not retried"

        if status_code == 501:
            raise NonRecoverableNetworkError("Received code 501 from server.")

        if not self._is_method_retryable(method):  # type: ignore
            return False, "Only GET and POST requests are retried"

        if status_code not in self.status_forcelist:
            return False, f"Status code {status_code} is not retryable"

        if (
            self.command_type == CommandType.EXECUTE_STATEMENT
            and status_code not in self.SAFE_EXECUTE_STATUS_CODES
            and status_code not in self.force_dangerous_codes
        ):
            raise UnsafeToRetryError(
                "ExecuteStatement command can only be retried for codes 429 and 503",
                {"http-code": status_code},
            )

        if (
            self.command_type == CommandType.EXECUTE_STATEMENT
            and status_code in self.force_dangerous_codes
        ):
            return (
                True,
                f"Request failed with dangerous code {status_code} that is one of the configured _retry_dangerous_codes.",
            )

        logger.debug(
            "This request should be retried: %s",
            self.command_type and self.command_type.value,
        )
        return (
            True,
            "Failed requests are retried by default per configured StatementRetryPolicy",
        )

    def is_retry(
        self, method: str, status_code: int, has_retry_after: bool = False
    ) -> bool:
        """
        Called by urllib3 when determining whether or not to retry

        Logs a debug message if the request will be retried
        """

        should_retry, msg = self.should_retry(method, status_code)

        if should_retry:
            logger.debug(msg)

        return should_retry
