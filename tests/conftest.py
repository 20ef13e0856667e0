"""Shared fixtures for the events API tests."""
from datetime import datetime

import boto3
import pytest
from moto import mock_aws

from storage.dynamodb_manager import DynamoDBManager


TABLE_NAME = 'test-free-food-events'


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches real AWS."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Create a mock DynamoDB events table."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'event_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'event_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )
        yield table


@pytest.fixture
def dynamodb_manager(dynamodb_table):
    """Open a DynamoDBManager against the mock table."""
    manager = DynamoDBManager(TABLE_NAME, region_name='us-east-1')
    manager.open()
    yield manager
    manager.close()


@pytest.fixture
def now():
    """Fixed reference time: Thursday 20 Nov 2025, 10:00 AM."""
    return datetime(2025, 11, 20, 10, 0)
