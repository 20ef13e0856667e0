"""AWS Lambda handler for the free food events REST API."""
import base64
import binascii
import json
import logging
import os
import re
import time
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from dateutil import tz

from processor.distance import parse_coordinate
from processor.event_ranker import EventRanker
from processor.past_event_cleanup import PastEventCleaner
from storage.dynamodb_manager import DynamoDBManager, EventNotFoundError, StorageError


# Aluva, Kerala
DEFAULT_FALLBACK_LOCATION = (10.1081, 76.3525)

CORS_HEADERS = {
    'Content-Type': 'application/json',
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET,POST,PATCH,DELETE,OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type,X-Admin-Password',
}

EVENT_PATH = re.compile(r'^/events/(?P<event_id>[^/]+)$')

_RESERVED_LOG_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any `extra` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_LOG_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


logger = logging.getLogger(__name__)


class BadRequestError(Exception):
    """Raised for request payloads the API cannot use."""


def current_time(timezone_name: Optional[str] = None) -> datetime:
    """
    Capture "now" once per request.

    Args:
        timezone_name: IANA zone name; naive local time when unset or unknown
    """
    zone = tz.gettz(timezone_name) if timezone_name else None
    return datetime.now(zone)


def read_fallback_location() -> Tuple[float, float]:
    """Observer coordinate used when a request does not supply one."""
    latitude = parse_coordinate(os.environ.get('FALLBACK_LATITUDE'))
    longitude = parse_coordinate(os.environ.get('FALLBACK_LONGITUDE'))
    if latitude is None or longitude is None:
        return DEFAULT_FALLBACK_LOCATION
    return latitude, longitude


def _response(status_code: int, body: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': dict(CORS_HEADERS),
        'body': json.dumps(body) if body is not None else ''
    }


def _request_route(event: Dict[str, Any]) -> Tuple[str, str]:
    """Extract method and path from an API Gateway v1 or v2 proxy event."""
    http = event.get('requestContext', {}).get('http', {})
    method = (event.get('httpMethod') or http.get('method') or 'GET').upper()
    path = event.get('path') or event.get('rawPath') or '/'

    path = '/' + path.strip('/')
    if path == '/api' or path.startswith('/api/'):
        path = path[len('/api'):] or '/'
    return method, path


def _request_headers(event: Dict[str, Any]) -> Dict[str, str]:
    return {key.lower(): value for key, value in (event.get('headers') or {}).items()}


def _request_body(event: Dict[str, Any]) -> Dict[str, Any]:
    raw = event.get('body') or ''
    if event.get('isBase64Encoded') and raw:
        try:
            raw = base64.b64decode(raw, validate=True).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError) as e:
            raise BadRequestError('Request body is not valid base64 UTF-8') from e
    if not raw:
        return {}

    try:
        body = json.loads(raw)
    except json.JSONDecodeError as e:
        raise BadRequestError(f"Invalid JSON body: {e.msg}") from e

    if not isinstance(body, dict):
        raise BadRequestError('Request body must be a JSON object')
    return body


def _error_body(method: str, path: str, message: str) -> Dict[str, Any]:
    """Error envelope in the shape the route returns on success."""
    if method == 'DELETE' and path == '/events/cleanup/past':
        return {'deletedCount': 0, 'error': message}
    if method == 'DELETE' and EVENT_PATH.match(path):
        return {'error': message}
    return {'data': None, 'error': message}


def _observer_location(event: Dict[str, Any]) -> Tuple[float, float]:
    query = event.get('queryStringParameters') or {}
    latitude = parse_coordinate(query.get('lat'))
    longitude = parse_coordinate(query.get('lng'))
    if latitude is None or longitude is None:
        return read_fallback_location()
    return latitude, longitude


def _is_authorized(event: Dict[str, Any], admin_password: Optional[str]) -> bool:
    if not admin_password:
        return True
    return _request_headers(event).get('x-admin-password') == admin_password


def list_events(store: DynamoDBManager) -> Dict[str, Any]:
    """GET /events"""
    records = store.list_events()
    return _response(200, {'data': [record.to_dict() for record in records], 'error': None})


def list_ranked_events(
    store: DynamoDBManager,
    observer: Tuple[float, float],
    now: datetime
) -> Dict[str, Any]:
    """GET /events/ranked"""
    view = EventRanker().rank_events(store.list_events(), now, observer)
    return _response(200, {'data': view.to_dict(), 'error': None})


def create_event(store: DynamoDBManager, body: Dict[str, Any]) -> Dict[str, Any]:
    """POST /events"""
    record = store.insert_event(body)
    return _response(200, {'data': record.to_dict(), 'error': None})


def update_event(store: DynamoDBManager, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    """PATCH /events/{id}"""
    try:
        record = store.update_event(event_id, body)
    except EventNotFoundError as e:
        return _response(404, {'data': None, 'error': str(e)})
    return _response(200, {'data': record.to_dict(), 'error': None})


def delete_event(store: DynamoDBManager, event_id: str) -> Dict[str, Any]:
    """DELETE /events/{id}"""
    try:
        store.delete_event(event_id)
    except EventNotFoundError as e:
        return _response(404, {'error': str(e)})
    return _response(200, {'error': None})


def cleanup_past_events(store: DynamoDBManager, now: datetime) -> Dict[str, Any]:
    """DELETE /events/cleanup/past"""
    try:
        result = PastEventCleaner(store).run(now)
    except StorageError as e:
        return _response(500, {'deletedCount': 0, 'error': str(e)})
    return _response(200, {'deletedCount': result.deleted, 'error': None})


def route_request(
    store: DynamoDBManager,
    event: Dict[str, Any],
    method: str,
    path: str,
    now: datetime
) -> Dict[str, Any]:
    """Dispatch a proxy event to the matching route."""
    if path == '/events':
        if method == 'GET':
            return list_events(store)
        if method == 'POST':
            return create_event(store, _request_body(event))

    elif path == '/events/ranked' and method == 'GET':
        return list_ranked_events(store, _observer_location(event), now)

    elif path == '/events/cleanup/past' and method == 'DELETE':
        return cleanup_past_events(store, now)

    else:
        match = EVENT_PATH.match(path)
        if match and method == 'PATCH':
            return update_event(store, match.group('event_id'), _request_body(event))
        if match and method == 'DELETE':
            return delete_event(store, match.group('event_id'))

    return _response(404, {'error': f"No route for {method} {path}"})


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the events API.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        API Gateway proxy response with a JSON `{data, error}` envelope
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'free-food-events')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timezone_name = os.environ.get('EVENT_TIMEZONE')
    admin_password = os.environ.get('ADMIN_PASSWORD')

    setup_logging(log_level)

    start_time = time.time()
    method, path = _request_route(event)
    logger.info(
        f"Request started: {method} {path}",
        extra={'table_name': table_name, 'method': method, 'path': path}
    )

    if method == 'OPTIONS':
        return _response(204, None)

    if method in ('POST', 'PATCH', 'DELETE') and not _is_authorized(event, admin_password):
        logger.warning(f"Rejected unauthorized {method} {path}")
        return _response(401, _error_body(method, path, 'Incorrect password. Access denied.'))

    try:
        with DynamoDBManager(table_name=table_name) as store:
            response = route_request(store, event, method, path, current_time(timezone_name))

    except BadRequestError as e:
        logger.warning(f"Bad request for {method} {path}: {e}")
        response = _response(400, _error_body(method, path, str(e)))

    except StorageError as e:
        logger.error(
            f"Storage error during {method} {path}: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        response = _response(500, _error_body(method, path, str(e)))

    except Exception as e:
        logger.error(
            f"Request failed: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        response = _response(500, _error_body(method, path, str(e)))

    duration = time.time() - start_time
    logger.info(
        f"Request completed: {method} {path} -> {response['statusCode']}",
        extra={'status_code': response['statusCode'], 'duration_seconds': round(duration, 2)}
    )
    return response
