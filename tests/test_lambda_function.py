"""Integration tests for Lambda handler."""
import json
import logging
import os
from unittest.mock import Mock, patch

import pytest
import responses

from conftest import FEED_URL, TABLE_NAME, make_ics
from lambda_function import JsonFormatter, lambda_handler, setup_logging

FEED = make_ics(
    """
    UID:concert@example.com
    DTSTART:20240115T180000Z
    DTEND:20240115T200000Z
    SUMMARY:Concert
    LOCATION:Town Square
    """,
    """
    UID:market@example.com
    DTSTART:20240116T080000Z
    DURATION:PT4H
    SUMMARY:Farmers Market
    """,
)


@pytest.fixture
def mock_env(tmp_path):
    """Set up environment variables for testing."""
    env_vars = {
        'TABLE_NAME': TABLE_NAME,
        'LOG_LEVEL': 'INFO',
        'TIMEZONE': 'Europe/Berlin',
        'CACHE_DIR': str(tmp_path),
        'TIMEOUT_SECONDS': '5',
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.memory_limit_in_mb = 512
    context.invoked_function_arn = 'arn:aws:lambda:us-east-1:123456789012:function:test-function'
    context.aws_request_id = 'test-request-id'
    return context


class TestLambdaHandler:
    """Test cases for Lambda handler."""

    @responses.activate
    def test_successful_import(self, dynamodb_table, mock_env, mock_context):
        """Test successful end-to-end import."""
        responses.add(responses.GET, FEED_URL, body=FEED, status=200)

        response = lambda_handler({'feed_uri': FEED_URL, 'container_id': 7}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['message'] == 'Import completed successfully'
        assert body['state'] == 'done'
        assert body['statistics']['fetched'] == 2
        assert body['statistics']['normalized'] == 2
        assert body['statistics']['created'] == 2
        assert body['statistics']['updated'] == 0
        assert body['statistics']['reindexed'] == 2
        assert 'duration_seconds' in body

        item = dynamodb_table.get_item(Key={'event_id': 1})['Item']
        assert item['title'] == 'Concert'
        # 18:00 UTC is 19:00 in Berlin
        assert item['start'] == '2024-01-15T19:00:00+01:00'
        assert item['event_date'] == '2024-01-15'

    @responses.activate
    def test_reimport_updates_instead_of_duplicating(self, dynamodb_table, mock_env, mock_context):
        responses.add(responses.GET, FEED_URL, body=FEED, status=200)
        payload = {'feed_uri': FEED_URL, 'container_id': '7'}

        lambda_handler(payload, mock_context)
        response = lambda_handler(payload, mock_context)

        body = json.loads(response['body'])
        assert body['statistics']['created'] == 0
        assert body['statistics']['updated'] == 2
        assert dynamodb_table.scan()['Count'] == 3  # two events and the id counter

    @responses.activate
    def test_delete_before_import(self, dynamodb_table, mock_env, mock_context):
        responses.add(responses.GET, FEED_URL, body=FEED, status=200)
        payload = {'feed_uri': FEED_URL, 'container_id': 7}
        lambda_handler(payload, mock_context)

        response = lambda_handler(dict(payload, delete_before_import='true'), mock_context)

        body = json.loads(response['body'])
        assert body['statistics']['deleted'] == 2
        assert body['statistics']['kept'] == 0
        assert body['statistics']['created'] == 2

    def test_defaults_from_environment(self, dynamodb_table, mock_env, mock_context):
        with patch.dict(os.environ, {'FEED_URI': 'not a url', 'CONTAINER_ID': '7'}):
            response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 400
        body = json.loads(response['body'])
        assert body['error_type'] == 'InvalidInputError'
        assert body['state'] == 'failed'

    def test_invalid_uri(self, dynamodb_table, mock_env, mock_context):
        response = lambda_handler({'feed_uri': 'not a url', 'container_id': 7}, mock_context)

        assert response['statusCode'] == 400
        body = json.loads(response['body'])
        assert body['message'] == 'Import failed'
        assert body['messages'][-1]['severity'] == 'Error'

    @responses.activate
    def test_feed_fetch_failure(self, dynamodb_table, mock_env, mock_context):
        """Test error handling for feed fetch failures."""
        responses.add(responses.GET, FEED_URL, body='Server Error', status=500)

        response = lambda_handler({'feed_uri': FEED_URL, 'container_id': 7}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['error_type'] == 'FetchError'
        assert body['statistics']['parsed'] == 0
        assert body['statistics']['normalized'] == 0
        assert dynamodb_table.scan()['Count'] == 0

    def test_unknown_timezone(self, mock_env, mock_context):
        with patch.dict(os.environ, {'TIMEZONE': 'Mars/Olympus_Mons'}):
            response = lambda_handler({'feed_uri': FEED_URL, 'container_id': 7}, mock_context)

        assert response['statusCode'] == 400
        body = json.loads(response['body'])
        assert body['message'] == 'Invalid configuration'

    @patch('lambda_function.build_importer')
    def test_unexpected_exception(self, mock_build_importer, mock_env, mock_context):
        mock_build_importer.return_value.run.side_effect = Exception('Boom')

        response = lambda_handler({'feed_uri': FEED_URL, 'container_id': 7}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Import failed'
        assert body['error'] == 'Boom'
        assert body['error_type'] == 'Exception'

    @responses.activate
    @patch('lambda_function.setup_logging')
    def test_logging_output(self, mock_setup_logging, dynamodb_table, mock_env, mock_context, caplog):
        """Test that logging output is generated correctly."""
        responses.add(responses.GET, FEED_URL, body=FEED, status=200)

        with caplog.at_level(logging.INFO):
            response = lambda_handler({'feed_uri': FEED_URL, 'container_id': 7}, mock_context)

        assert response['statusCode'] == 200
        log_messages = [record.getMessage() for record in caplog.records]
        assert any('Lambda execution started' in msg for msg in log_messages)
        assert any('Start to checkout the calendar' in msg for msg in log_messages)
        assert any('Run reindex process after import' in msg for msg in log_messages)
        assert any('Lambda execution completed successfully' in msg for msg in log_messages)


class TestSetupLogging:
    """Test cases for logging setup."""

    def test_setup_logging_default_level(self):
        """Test logging setup with default INFO level."""
        setup_logging()
        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_debug_level(self):
        """Test logging setup with DEBUG level."""
        setup_logging('DEBUG')
        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_unknown_level_falls_back_to_info(self):
        setup_logging('LOUD')
        assert logging.getLogger().level == logging.INFO

    def test_json_formatter_includes_extra_fields(self):
        record = logging.LogRecord('importer', logging.WARNING, __file__, 1, 'Skipped %s', ('x',), None)
        record.container_id = 7

        data = json.loads(JsonFormatter().format(record))

        assert data['message'] == 'Skipped x'
        assert data['level'] == 'WARNING'
        assert data['logger'] == 'importer'
        assert data['container_id'] == 7
        assert 'args' not in data
