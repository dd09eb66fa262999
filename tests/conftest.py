"""
Pytest configuration and fixtures for the Mixpanel feature flags SDK tests
"""

import json
import os
import sys
import threading

import pytest
import responses

# Add src directory to Python path
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
src_path = os.path.join(project_root, 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

import mixpanel_flags  # noqa: E402
from mixpanel_flags.config import LocalFlagsConfig, RemoteFlagsConfig  # noqa: E402

TEST_TOKEN = "test-project-token"
API_BASE_URL = "https://api.mixpanel.com"
DEFINITIONS_URL = f"{API_BASE_URL}/flags/definitions"
EXPERIMENT_ID = "5a7f3c1e-8b2d-4e6f-9a0b-1c2d3e4f5a6b"


def make_flag(
        key="test-flag",
        variants=None,
        rollouts=None,
        test_users=None,
        context="distinct_id",
        hash_salt=None,
        experiment_id=None,
        is_experiment_active=None
):
    """Build one flag definition the way the definitions endpoint serves it"""
    if variants is None:
        variants = [
            {'key': 'control', 'value': False, 'is_control': True, 'split': 0.5},
            {'key': 'treatment', 'value': True, 'is_control': False, 'split': 0.5},
        ]
    if rollouts is None:
        rollouts = [{'rollout_percentage': 1.0}]

    ruleset = {'variants': variants, 'rollout': rollouts}
    if test_users is not None:
        ruleset['test'] = {'users': test_users}

    flag = {
        'id': f"id-{key}",
        'name': key.replace('-', ' ').title(),
        'key': key,
        'status': 'active',
        'project_id': 1234,
        'context': context,
        'ruleset': ruleset,
    }
    if hash_salt is not None:
        flag['hash_salt'] = hash_salt
    if experiment_id is not None:
        flag['experiment_id'] = experiment_id
    if is_experiment_active is not None:
        flag['is_experiment_active'] = is_experiment_active
    return flag


def make_definitions(*flags):
    return {'flags': list(flags)}


class RecordingEventSender:
    """EventSender that keeps every event in memory"""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def send_event(self, distinct_id, event_name, properties):
        with self._lock:
            self.events.append((distinct_id, event_name, dict(properties)))

    def events_for(self, flag_key):
        return [event for event in self.events if event[2].get('Experiment name') == flag_key]


class StaticHttpGet:
    """Stand-in for the GET capability returning a fixed document"""

    def __init__(self, document=None, error=None):
        self.document = document if document is not None else make_definitions()
        self.error = error
        self.urls = []

    def __call__(self, url):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        if isinstance(self.document, str):
            return self.document
        return json.dumps(self.document)


@pytest.fixture
def project_token():
    return TEST_TOKEN


@pytest.fixture
def local_config():
    """Local config without background polling"""
    return LocalFlagsConfig(project_token=TEST_TOKEN, enable_polling=False)


@pytest.fixture
def remote_config():
    return RemoteFlagsConfig(project_token=TEST_TOKEN)


@pytest.fixture
def event_sender():
    return RecordingEventSender()


@pytest.fixture
def sample_definitions():
    """Definitions covering each kind of rollout"""
    return make_definitions(
        make_flag('boolean-flag', experiment_id=EXPERIMENT_ID, is_experiment_active=True),
        make_flag(
            'theme',
            variants=[
                {'key': 'dark', 'value': 'dark', 'split': 0.5},
                {'key': 'light', 'value': 'light', 'split': 0.5},
            ],
            rollouts=[{'rollout_percentage': 1.0, 'variant_override': {'key': 'dark'}}],
            hash_salt='themesalt'
        ),
        make_flag(
            'premium-only',
            rollouts=[{
                'rollout_percentage': 1.0,
                'runtime_evaluation_definition': {'plan': 'Premium'},
            }]
        ),
        make_flag('disabled-flag', rollouts=[{'rollout_percentage': 0.0}]),
    )


@pytest.fixture
def local_provider_factory(local_config, event_sender):
    """Build local providers from a definitions document and close them afterwards"""
    providers = []

    def factory(document, config=None, sender=event_sender, start=True):
        provider = mixpanel_flags.LocalFlagsProvider(
            config or local_config,
            event_sender=sender,
            http_get=StaticHttpGet(document)
        )
        providers.append(provider)
        if start:
            provider.start_polling_for_definitions()
        return provider

    yield factory

    for provider in providers:
        provider.close()


@pytest.fixture
def mock_responses():
    """Setup mock responses for HTTP requests"""
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


# Test markers
def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
