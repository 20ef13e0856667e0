"""Integration tests for Lambda handler."""
import base64
import json
import logging
import os
from datetime import datetime
from unittest.mock import Mock, patch

import pytest

from lambda_function import (
    DEFAULT_FALLBACK_LOCATION,
    JsonFormatter,
    current_time,
    lambda_handler,
    read_fallback_location,
    setup_logging,
)
from storage.dynamodb_manager import StorageError


FIXED_NOW = datetime(2025, 11, 20, 10, 0)


@pytest.fixture
def mock_env(dynamodb_table):
    """Set up environment variables for testing."""
    env_vars = {
        'TABLE_NAME': dynamodb_table.name,
        'LOG_LEVEL': 'INFO',
    }
    with patch.dict(os.environ, env_vars):
        os.environ.pop('ADMIN_PASSWORD', None)
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.memory_limit_in_mb = 256
    context.invoked_function_arn = 'arn:aws:lambda:us-east-1:123456789012:function:test-function'
    context.aws_request_id = 'test-request-id'
    return context


@pytest.fixture
def fixed_now():
    with patch('lambda_function.current_time', return_value=FIXED_NOW):
        yield FIXED_NOW


def api_event(method, path, body=None, query=None, headers=None):
    """Build an API Gateway REST (v1) proxy event."""
    return {
        'httpMethod': method,
        'path': path,
        'headers': headers or {},
        'queryStringParameters': query,
        'body': json.dumps(body) if body is not None else None,
        'isBase64Encoded': False,
    }


def call(event, context):
    response = lambda_handler(event, context)
    body = json.loads(response['body']) if response['body'] else None
    return response['statusCode'], body


class TestEventRoutes:
    """Test cases for the CRUD routes."""

    def test_create_and_list(self, mock_env, mock_context):
        status, body = call(api_event('POST', '/events', {
            'event_name': 'Free Pizza',
            'date': '21 Nov',
            'time': '7:00 PM',
            'verified': 'false',
            'id': 'ignored',
        }), mock_context)

        assert status == 200
        assert body['error'] is None
        created = body['data']
        assert created['id'] == created['event_id']
        assert created['id'] != 'ignored'
        assert created['verified'] is False

        status, body = call(api_event('GET', '/events'), mock_context)

        assert status == 200
        assert body == {'data': [created], 'error': None}

    def test_api_prefix_and_v2_payload(self, mock_env, mock_context):
        event = {
            'rawPath': '/api/events',
            'requestContext': {'http': {'method': 'GET'}},
        }

        status, body = call(event, mock_context)

        assert status == 200
        assert body == {'data': [], 'error': None}

    def test_update_event(self, mock_env, mock_context):
        _, created = call(api_event('POST', '/events', {'event_name': 'Chai'}), mock_context)
        event_id = created['data']['id']

        status, body = call(
            api_event('PATCH', f'/events/{event_id}', {'verified': True}), mock_context
        )

        assert status == 200
        assert body['data']['verified'] is True
        assert body['data']['event_name'] == 'Chai'

    def test_update_missing_event(self, mock_env, mock_context):
        status, body = call(
            api_event('PATCH', '/events/missing', {'verified': True}), mock_context
        )

        assert status == 404
        assert body == {'data': None, 'error': 'Event not found'}

    def test_delete_event(self, mock_env, mock_context):
        _, created = call(api_event('POST', '/events', {'event_name': 'Chai'}), mock_context)
        event_id = created['data']['id']

        status, body = call(api_event('DELETE', f'/events/{event_id}'), mock_context)

        assert status == 200
        assert body == {'error': None}
        _, listing = call(api_event('GET', '/events'), mock_context)
        assert listing['data'] == []

    def test_delete_missing_event(self, mock_env, mock_context):
        status, body = call(api_event('DELETE', '/events/missing'), mock_context)

        assert status == 404
        assert body == {'error': 'Event not found'}

    def test_invalid_json_body(self, mock_env, mock_context):
        event = api_event('POST', '/events')
        event['body'] = '{not json'

        status, body = call(event, mock_context)

        assert status == 400
        assert 'Invalid JSON body' in body['error']

    def test_base64_body(self, mock_env, mock_context):
        event = api_event('POST', '/events')
        event['body'] = base64.b64encode(b'{"event_name": "Samosa"}').decode()
        event['isBase64Encoded'] = True

        status, body = call(event, mock_context)

        assert status == 200
        assert body['data']['event_name'] == 'Samosa'

    @pytest.mark.parametrize('raw_body', [
        'not base64!!',
        base64.b64encode(b'\xff\xfe').decode(),
    ])
    def test_undecodable_base64_body(self, mock_env, mock_context, raw_body):
        event = api_event('POST', '/events')
        event['body'] = raw_body
        event['isBase64Encoded'] = True

        status, body = call(event, mock_context)

        assert status == 400
        assert body == {'data': None, 'error': 'Request body is not valid base64 UTF-8'}

    def test_unknown_route(self, mock_env, mock_context):
        status, body = call(api_event('GET', '/menus'), mock_context)

        assert status == 404
        assert body['error'] == 'No route for GET /menus'

    def test_options_preflight(self, mock_env, mock_context):
        response = lambda_handler(api_event('OPTIONS', '/events'), mock_context)

        assert response['statusCode'] == 204
        assert response['headers']['Access-Control-Allow-Origin'] == '*'


class TestRankedAndCleanupRoutes:
    """Test cases for routes that classify events by time."""

    @pytest.fixture
    def seeded(self, dynamodb_table):
        for item in [
            {'event_id': 'past', 'date': '19 Nov 2025', 'time': '6:00 PM'},
            {'event_id': 'today', 'date': 'Today', 'time': '5:00 PM',
             'gps_latitude': '10.1081', 'gps_longitude': '76.3525'},
            {'event_id': 'upcoming', 'date': '27 Nov 2025'},
        ]:
            dynamodb_table.put_item(Item=item)

    def test_ranked_listing(self, mock_env, mock_context, seeded, fixed_now):
        status, body = call(
            api_event('GET', '/events/ranked', query={'lat': '10.1081', 'lng': '76.3525'}),
            mock_context
        )

        assert status == 200
        data = body['data']
        assert [e['id'] for e in data['today']] == ['today']
        assert [e['id'] for e in data['upcoming']] == ['upcoming']
        assert [e['id'] for e in data['past']] == ['past']
        assert data['today'][0]['distance'] == 0
        assert data['today'][0]['displayTime'] == 'Today at 5:00 PM'
        assert data['upcoming'][0]['distance'] is None

    def test_ranked_listing_uses_fallback_location(self, mock_env, mock_context, seeded, fixed_now):
        with patch.dict(os.environ, {'FALLBACK_LATITUDE': '9.9312', 'FALLBACK_LONGITUDE': '76.2673'}):
            _, body = call(api_event('GET', '/events/ranked'), mock_context)

        assert 21 < body['data']['today'][0]['distance'] < 22.5

    def test_ranked_listing_with_non_text_date(self, mock_env, mock_context, fixed_now):
        status, created = call(
            api_event('POST', '/events', {'event_name': 'Biryani', 'date': True, 'time': ['5 PM']}),
            mock_context
        )
        assert status == 200
        assert created['data']['date'] == 'True'
        assert created['data']['time'] is None

        status, body = call(api_event('GET', '/events/ranked'), mock_context)

        assert status == 200
        upcoming = body['data']['upcoming']
        assert [e['name'] for e in upcoming] == ['Biryani']
        assert upcoming[0]['displayTime'] == 'Tomorrow at 12:00 PM'

    def test_cleanup_past(self, mock_env, mock_context, seeded, fixed_now):
        status, body = call(api_event('DELETE', '/events/cleanup/past'), mock_context)

        assert status == 200
        assert body == {'deletedCount': 1, 'error': None}
        _, listing = call(api_event('GET', '/events'), mock_context)
        assert {e['id'] for e in listing['data']} == {'today', 'upcoming'}


class TestAdminPassword:
    """Test cases for the admin password gate."""

    def test_rejects_mutation_without_password(self, mock_env, mock_context):
        with patch.dict(os.environ, {'ADMIN_PASSWORD': 'secret'}):
            status, body = call(api_event('POST', '/events', {'event_name': 'x'}), mock_context)

        assert status == 401
        assert body['error'] == 'Incorrect password. Access denied.'

    def test_rejected_delete_keeps_delete_envelope(self, mock_env, mock_context):
        with patch.dict(os.environ, {'ADMIN_PASSWORD': 'secret'}):
            status, body = call(api_event('DELETE', '/events/abc'), mock_context)

        assert status == 401
        assert body == {'error': 'Incorrect password. Access denied.'}

    def test_rejected_cleanup_keeps_cleanup_envelope(self, mock_env, mock_context):
        with patch.dict(os.environ, {'ADMIN_PASSWORD': 'secret'}):
            status, body = call(api_event('DELETE', '/events/cleanup/past'), mock_context)

        assert status == 401
        assert body == {'deletedCount': 0, 'error': 'Incorrect password. Access denied.'}

    def test_accepts_mutation_with_password(self, mock_env, mock_context):
        with patch.dict(os.environ, {'ADMIN_PASSWORD': 'secret'}):
            status, _ = call(api_event(
                'POST', '/events', {'event_name': 'x'},
                headers={'X-Admin-Password': 'secret'}
            ), mock_context)

        assert status == 200

    def test_reads_stay_open(self, mock_env, mock_context):
        with patch.dict(os.environ, {'ADMIN_PASSWORD': 'secret'}):
            status, _ = call(api_event('GET', '/events'), mock_context)

        assert status == 200


class TestFailures:
    """Test cases for storage failures."""

    @patch('lambda_function.DynamoDBManager')
    def test_storage_error(self, mock_dynamodb_class, mock_context):
        store = Mock()
        store.list_events.side_effect = StorageError('Table unavailable')
        mock_dynamodb_class.return_value.__enter__ = Mock(return_value=store)
        mock_dynamodb_class.return_value.__exit__ = Mock(return_value=False)

        status, body = call(api_event('GET', '/events'), mock_context)

        assert status == 500
        assert body == {'data': None, 'error': 'Table unavailable'}

    @patch('lambda_function.DynamoDBManager')
    def test_cleanup_storage_error(self, mock_dynamodb_class, mock_context):
        store = Mock()
        store.list_events.side_effect = StorageError('Scan failed')
        mock_dynamodb_class.return_value.__enter__ = Mock(return_value=store)
        mock_dynamodb_class.return_value.__exit__ = Mock(return_value=False)

        status, body = call(api_event('DELETE', '/events/cleanup/past'), mock_context)

        assert status == 500
        assert body == {'deletedCount': 0, 'error': 'Scan failed'}

    @patch('lambda_function.DynamoDBManager')
    def test_unexpected_error(self, mock_dynamodb_class, mock_context):
        mock_dynamodb_class.return_value.__enter__ = Mock(side_effect=RuntimeError('boom'))
        mock_dynamodb_class.return_value.__exit__ = Mock(return_value=False)

        status, body = call(api_event('GET', '/events'), mock_context)

        assert status == 500
        assert body['error'] == 'boom'

    @patch('lambda_function.DynamoDBManager')
    def test_delete_storage_error(self, mock_dynamodb_class, mock_context):
        store = Mock()
        store.delete_event.side_effect = StorageError('Throttled')
        mock_dynamodb_class.return_value.__enter__ = Mock(return_value=store)
        mock_dynamodb_class.return_value.__exit__ = Mock(return_value=False)

        status, body = call(api_event('DELETE', '/events/abc'), mock_context)

        assert status == 500
        assert body == {'error': 'Throttled'}

    @patch('lambda_function.DynamoDBManager')
    def test_cleanup_unexpected_error(self, mock_dynamodb_class, mock_context):
        mock_dynamodb_class.return_value.__enter__ = Mock(side_effect=RuntimeError('boom'))
        mock_dynamodb_class.return_value.__exit__ = Mock(return_value=False)

        status, body = call(api_event('DELETE', '/events/cleanup/past'), mock_context)

        assert status == 500
        assert body == {'deletedCount': 0, 'error': 'boom'}

    @patch('lambda_function.DynamoDBManager')
    @patch('lambda_function.setup_logging')
    def test_logging_output(self, mock_setup_logging, mock_dynamodb_class, mock_context, caplog):
        store = Mock()
        store.list_events.return_value = []
        mock_dynamodb_class.return_value.__enter__ = Mock(return_value=store)
        mock_dynamodb_class.return_value.__exit__ = Mock(return_value=False)

        with caplog.at_level(logging.INFO, logger='lambda_function'):
            lambda_handler(api_event('GET', '/events'), mock_context)

        log_messages = [record.message for record in caplog.records]
        assert any('Request started: GET /events' in msg for msg in log_messages)
        assert any('Request completed: GET /events -> 200' in msg for msg in log_messages)


class TestHelpers:
    """Test cases for configuration helpers."""

    def test_fallback_location_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert read_fallback_location() == DEFAULT_FALLBACK_LOCATION

    def test_fallback_location_from_env(self):
        with patch.dict(os.environ, {'FALLBACK_LATITUDE': '12.5', 'FALLBACK_LONGITUDE': '77'}):
            assert read_fallback_location() == (12.5, 77.0)

    def test_current_time_with_timezone(self):
        assert current_time('Asia/Kolkata').utcoffset().total_seconds() == 5.5 * 3600

    def test_current_time_naive_by_default(self):
        assert current_time().tzinfo is None


class TestSetupLogging:
    """Test cases for logging setup."""

    def test_setup_logging_default_level(self):
        setup_logging()
        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_debug_level(self):
        setup_logging('DEBUG')
        assert logging.getLogger().level == logging.DEBUG

    def test_json_formatter_includes_extra(self):
        record = logging.LogRecord('test', logging.INFO, __file__, 1, 'hello %s', ('world',), None)
        record.path = '/events'

        payload = json.loads(JsonFormatter().format(record))

        assert payload['message'] == 'hello world'
        assert payload['level'] == 'INFO'
        assert payload['logger'] == 'test'
        assert payload['path'] == '/events'
