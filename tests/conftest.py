"""Shared fixtures for the calendar import tests."""
import os
from datetime import datetime, timedelta, timezone

import boto3
import pytest
from moto import mock_aws

from processor.models import Event
from storage.dynamodb_store import DynamoDBEventStore

TABLE_NAME = 'test-calendar-events'
FEED_URL = 'https://calendar.example.com/feed.ics'


def make_ics(*vevents: str) -> bytes:
    """Wrap VEVENT bodies into a minimal VCALENDAR document."""
    lines = ['BEGIN:VCALENDAR', 'VERSION:2.0', 'PRODID:-//Test//Calendar//EN']
    for body in vevents:
        lines.append('BEGIN:VEVENT')
        lines.extend(line.strip() for line in body.strip().splitlines())
        lines.append('END:VEVENT')
    lines.append('END:VCALENDAR')
    return ('\r\n'.join(lines) + '\r\n').encode('utf-8')


def make_event(uid: str, title: str = 'Event', day: int = 15, hours: int = 2) -> Event:
    start = datetime(2024, 1, day, 19, 0, tzinfo=timezone.utc)
    return Event(
        external_uid=uid,
        start=start,
        end=start + timedelta(hours=hours),
        title=title,
        description=f'{title} description',
        location='Town Square',
    )


@pytest.fixture(autouse=True)
def aws_credentials():
    """Fake AWS credentials so boto3 never reaches a real account."""
    env = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1',
    }
    saved = {key: os.environ.get(key) for key in env}
    os.environ.update(env)
    yield
    for key, value in saved.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


@pytest.fixture
def dynamodb_table():
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'event_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'event_id', 'AttributeType': 'N'},
                {'AttributeName': 'event_date', 'AttributeType': 'S'},
                {'AttributeName': 'start_time', 'AttributeType': 'S'}
            ],
            GlobalSecondaryIndexes=[
                {
                    'IndexName': 'date-index',
                    'KeySchema': [
                        {'AttributeName': 'event_date', 'KeyType': 'HASH'},
                        {'AttributeName': 'start_time', 'KeyType': 'RANGE'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'},
                    'ProvisionedThroughput': {
                        'ReadCapacityUnits': 5,
                        'WriteCapacityUnits': 5
                    }
                }
            ],
            BillingMode='PROVISIONED',
            ProvisionedThroughput={
                'ReadCapacityUnits': 5,
                'WriteCapacityUnits': 5
            }
        )

        yield table


@pytest.fixture
def event_store(dynamodb_table):
    """DynamoDBEventStore bound to the mock table."""
    return DynamoDBEventStore(TABLE_NAME, region_name='us-east-1')
