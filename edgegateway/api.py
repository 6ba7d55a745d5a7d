import logging
import time
from typing import Callable, TypeVar

from requests import RequestException, Response, Session

from .errors import (
    BUSY_SUFFIX,
    DecodeError,
    TaskFailedError,
    TransientError,
    TransportError,
)
from .models import ClientConfig, ConfigurationRequest, EdgeGatewayRecord, Task
from .xmlcodec import (
    decode_edge_gateway,
    decode_error_message,
    decode_task,
    encode_service_configuration_string,
)

logger = logging.getLogger(__name__)

SERVICE_CONFIGURATION_TYPE = (
    "application/vnd.vmware.admin.edgeGatewayServiceConfiguration+xml"
)

T = TypeVar("T")


def new_session(shared: ClientConfig) -> Session:
    s = Session()
    s.headers.update(
        {
            "x-vcloud-authorization": shared.token,
            "Accept": f"application/*+xml;version={shared.api_version}",
        }
    )
    s.verify = shared.verify_tls
    return s


def action_url(href: str) -> str:
    return href.rstrip("/") + "/action/configureServices"


def check_resp(resp: Response) -> Response:
    if 200 <= resp.status_code < 300:
        return resp

    message = decode_error_message(resp.content) or resp.text or resp.reason
    error = TransientError if message.endswith(BUSY_SUFFIX) else TransportError
    raise error(f"API Error: {resp.status_code}: {message}", resp.status_code)


def do_request(
    s: Session,
    shared: ClientConfig,
    method: str,
    url: str,
    body: str | None = None,
    content_type: str | None = None,
) -> Response:
    headers = {}
    if content_type is not None:
        headers["Content-Type"] = content_type

    logger.debug("%s %s", method, url)
    try:
        data = body.encode("utf-8") if body is not None else None
        resp = s.request(method, url, data=data, headers=headers)
    except RequestException as e:
        raise TransportError(str(e)) from e
    return check_resp(resp)


def retry_transient(fn: Callable[[], T], attempts: int | None, delay: float) -> T:
    """Calls fn until it stops raising TransientError.

    Gives up after `attempts` calls, or never when attempts is None. Any other
    error propagates on the first occurrence.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except TransientError:
            if attempts is not None and attempt >= attempts:
                raise
            logger.warning(
                "edge gateway is busy, retrying in %ss (attempt %d)", delay, attempt
            )
            time.sleep(delay)


def get_edge_gateway(s: Session, shared: ClientConfig, href: str) -> EdgeGatewayRecord:
    try:
        resp = do_request(s, shared, "GET", href)
    except TransportError as e:
        raise e.wrap("error retrieving Edge Gateway") from e

    try:
        return decode_edge_gateway(resp.content)
    except DecodeError as e:
        raise DecodeError(f"error decoding Edge Gateway response: {e}") from e


def post_configuration(
    s: Session,
    shared: ClientConfig,
    href: str,
    request: ConfigurationRequest,
    retry: bool = False,
) -> Task:
    output = encode_service_configuration_string(request.document())
    url = action_url(href)

    if shared.debug:
        print(f"\n\nXML DEBUG: {output}\n\n")
    logger.debug("posting to url: %s", url)
    logger.debug("xml to send:\n%s", output)

    def send() -> Response:
        return do_request(s, shared, "POST", url, output, SERVICE_CONFIGURATION_TYPE)

    try:
        if retry:
            resp = retry_transient(send, shared.retry_attempts, shared.retry_delay)
        else:
            resp = send()
    except TransportError as e:
        raise e.wrap("error reconfiguring Edge Gateway") from e

    try:
        return decode_task(resp.content)
    except DecodeError as e:
        raise DecodeError(f"error decoding Task response: {e}") from e


def get_task(s: Session, shared: ClientConfig, href: str) -> Task:
    try:
        resp = do_request(s, shared, "GET", href)
    except TransportError as e:
        raise e.wrap("error retrieving Task") from e

    try:
        return decode_task(resp.content)
    except DecodeError as e:
        raise DecodeError(f"error decoding Task response: {e}") from e


def wait_for_task(
    s: Session,
    shared: ClientConfig,
    task: Task,
    interval: float = 3.0,
    timeout: float | None = None,
) -> Task:
    deadline = None if timeout is None else time.monotonic() + timeout
    while not task.done:
        if deadline is not None and time.monotonic() >= deadline:
            raise TimeoutError(f"task {task.href} still {task.status} after {timeout}s")
        time.sleep(interval)
        task = get_task(s, shared, task.href)

    if task.status != "success":
        raise TaskFailedError(task)
    return task
