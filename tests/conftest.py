"""Pytest configuration and fixtures."""

import json
import os
from datetime import datetime, timedelta, timezone

import pytest

# Set environment variables before imports
os.environ["TABLE_NAME"] = "lookout-test"
os.environ["STAGE"] = "test"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["GEOIP_ENABLED"] = "false"

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


@pytest.fixture
def aws_credentials():
    """Mock AWS credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Create mocked DynamoDB table."""
    import boto3
    from moto import mock_aws

    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")

        table = dynamodb.create_table(
            TableName="lookout-test",
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
                {"AttributeName": "GSI1PK", "AttributeType": "S"},
                {"AttributeName": "GSI1SK", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": "GSI1",
                    "KeySchema": [
                        {"AttributeName": "GSI1PK", "KeyType": "HASH"},
                        {"AttributeName": "GSI1SK", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                },
            ],
            BillingMode="PAY_PER_REQUEST",
        )

        table.wait_until_exists()

        yield table


class FakeClock:
    """Controllable time source for services that take a ``clock``."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """A clock frozen at 2024-03-15 12:00 UTC."""
    return FakeClock(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def sample_site():
    """Create a sample site."""
    from lookout.models.site import Site

    return Site(
        id="test-site-123",
        workspace_id="test-workspace-456",
        name="Example Blog",
        public_key="pk_test_abc",
        salt="s" * 64,
        domains=["example.com"],
    )


@pytest.fixture
def saved_site(dynamodb_table, sample_site):
    """Store the sample site in the mocked table."""
    from lookout.repositories.site import SiteRepository

    SiteRepository().create_site(sample_site)
    return sample_site


@pytest.fixture
def api_gateway_event():
    """Create a sample authenticated API Gateway event."""
    def _create_event(
        method: str = "GET",
        path: str = "/",
        path_params: dict = None,
        query_params: dict = None,
        multi_query_params: dict = None,
        body: dict = None,
        user_id: str = "test-user-123",
        workspace_ids: list = None,
        is_admin: bool = False,
    ):
        workspace_ids = workspace_ids or ["test-workspace-456"]

        return {
            "httpMethod": method,
            "path": path,
            "pathParameters": path_params or {},
            "queryStringParameters": query_params or {},
            "multiValueQueryStringParameters": multi_query_params or {},
            "body": body if isinstance(body, str) else (json.dumps(body) if body else None),
            "headers": {
                "Authorization": "Bearer test-token",
                "Content-Type": "application/json",
            },
            "requestContext": {
                "authorizer": {
                    "userId": user_id,
                    "workspaceIds": ",".join(workspace_ids),
                    "isAdmin": "true" if is_admin else "false",
                },
            },
        }

    return _create_event


@pytest.fixture
def collect_event():
    """Create an unauthenticated collect request from a browser."""
    def _create_event(
        body=None,
        method: str = "POST",
        user_agent: str = CHROME_UA,
        ip: str = "203.0.113.10",
        origin: str = "https://example.com",
        headers: dict = None,
    ):
        event_headers = {
            "Content-Type": "application/json",
            "User-Agent": user_agent,
            "X-Forwarded-For": f"{ip}, 10.0.0.1",
        }
        if origin:
            event_headers["Origin"] = origin
        event_headers.update(headers or {})

        return {
            "httpMethod": method,
            "path": "/collect",
            "headers": event_headers,
            "body": body if body is None or isinstance(body, str) else json.dumps(body),
            "requestContext": {"identity": {"sourceIp": "10.0.0.1"}},
        }

    return _create_event


class MockLambdaContext:
    """Mock Lambda context."""

    def __init__(self):
        self.function_name = "lookout-test"
        self.memory_limit_in_mb = 256
        self.invoked_function_arn = "arn:aws:lambda:us-east-1:123456789012:function:lookout-test"
        self.aws_request_id = "test-request-id"

    def get_remaining_time_in_millis(self):
        return 30000


@pytest.fixture
def lambda_context():
    """Create mock Lambda context."""
    return MockLambdaContext()
