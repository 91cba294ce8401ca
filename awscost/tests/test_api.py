"""
Tests for the HTTP surface.
"""

import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient
from awscost.core.errors import PricingInitializationError
from awscost.main import app


EC2_T3_MICRO = {'provider': 'aws', 'resource_type': 'ec2', 'sku': 't3.micro', 'region': 'us-east-1'}


def test_plugin_info(client):
    response = client.get('/api/plugin/info')

    assert response.status_code == 200
    data = response.json()
    assert data['name'] == 'aws-public-pricing'
    assert data['region'] == 'us-east-1'
    assert data['location'] == 'US East (N. Virginia)'
    assert data['currency'] == 'USD'
    assert 'AmazonEC2' in data['build_stats']


def test_projected_cost(client):
    response = client.post('/api/cost/projected', json={'resource': EC2_T3_MICRO})

    assert response.status_code == 200
    estimate = response.json()['estimate']
    assert estimate['cost_per_month'] == pytest.approx(7.592)
    assert estimate['currency'] == 'USD'


def test_projected_cost_alb(client):
    resource = {
        'provider': 'aws', 'resource_type': 'elb', 'sku': 'alb', 'region': 'us-east-1',
        'tags': {'lcu_per_hour': '5'},
    }
    response = client.post('/api/cost/projected', json={'resource': resource})

    assert response.json()['estimate']['cost_per_month'] == pytest.approx(45.625)


def test_projected_cost_infinite_capacity_tag(client):
    resource = {
        'provider': 'aws', 'resource_type': 'elb', 'sku': 'alb', 'region': 'us-east-1',
        'tags': {'lcu_per_hour': '1e400'},
    }
    response = client.post('/api/cost/projected', json={'resource': resource})

    assert response.status_code == 200
    assert response.json()['estimate']['cost_per_month'] == pytest.approx(0.0225 * 730)


def test_projected_region_mismatch(client):
    resource = dict(EC2_T3_MICRO, region='eu-west-1')
    response = client.post('/api/cost/projected', json={'resource': resource})

    assert response.status_code == 412
    detail = response.json()['detail']
    assert detail['code'] == 'UNSUPPORTED_REGION'
    assert detail['details']['required_region'] == 'us-east-1'


def test_projected_unsupported_type(client):
    resource = dict(EC2_T3_MICRO, resource_type='sqs')
    response = client.post('/api/cost/projected', json={'resource': resource})

    assert response.status_code == 422
    assert response.json()['detail']['code'] == 'UNSUPPORTED_RESOURCE'


def test_supports(client):
    response = client.post('/api/cost/supports', json={'resource': EC2_T3_MICRO})
    assert response.json()['supported'] is True

    response = client.post('/api/cost/supports', json={'resource': dict(EC2_T3_MICRO, resource_type='sqs')})
    assert response.status_code == 200
    assert response.json()['supported'] is False
    assert response.json()['reason']


def test_actual_cost_from_arn(client):
    response = client.post('/api/cost/actual', json={
        'arn': 'arn:aws:ec2:us-east-1:123456789012:instance/i-0abc',
        'tags': {'sku': 't3.micro'},
        'start': '2024-05-01T00:00:00Z',
        'end': '2024-05-02T00:00:00Z',
    })

    assert response.status_code == 200
    result = response.json()['result']
    assert result['cost'] == pytest.approx(0.0104 * 24)
    assert result['usage_amount'] == pytest.approx(24)
    assert result['source'] == 'aws-public-fallback'
    assert result['estimated'] is True


def test_actual_cost_invalid_window(client):
    response = client.post('/api/cost/actual', json={
        'resource': EC2_T3_MICRO,
        'start': '2024-05-02T00:00:00Z',
        'end': '2024-05-01T00:00:00Z',
    })

    assert response.status_code == 400
    assert response.json()['detail']['code'] == 'INVALID_RESOURCE'


def test_actual_cost_isolated_partition(client):
    response = client.post('/api/cost/actual', json={
        'arn': 'arn:aws-iso:ec2:us-iso-east-1:123456789012:instance/i-0abc',
        'tags': {'sku': 't3.micro'},
        'start': '2024-05-01T00:00:00Z',
        'end': '2024-05-02T00:00:00Z',
    })

    assert response.status_code == 400
    assert 'isolated partitions' in response.json()['detail']['message']


def test_actual_cost_missing_identification(client):
    response = client.post('/api/cost/actual', json={
        'tags': {'env': 'prod'},
        'start': '2024-05-01T00:00:00Z',
        'end': '2024-05-02T00:00:00Z',
    })

    assert response.status_code == 400


def test_recommendations(client):
    response = client.post('/api/recommendations', json={'filter': {'sku': 'gp2', 'resource_type': 'ebs'}})

    assert response.status_code == 200
    data = response.json()
    assert len(data['recommendations']) == 1
    assert data['recommendations'][0]['recommended_config']['volume_type'] == 'gp3'
    assert data['summary']['total_estimated_savings'] == pytest.approx(2.0)


def test_recommendations_without_filter(client):
    response = client.post('/api/recommendations', json={})

    assert response.status_code == 200
    assert response.json()['recommendations'] == []


def test_pricing_unavailable():
    failing = Mock()
    failing.region.return_value = 'us-east-1'
    failing.build_stats.side_effect = PricingInitializationError('no catalog', {'region': 'us-east-1'})
    failing.ec2_on_demand_price_per_hour.side_effect = PricingInitializationError('no catalog')
    app.state.pricing_client = failing
    try:
        test_client = TestClient(app)
        assert test_client.get('/api/plugin/info').status_code == 503

        response = test_client.post('/api/cost/projected', json={'resource': EC2_T3_MICRO})
        assert response.status_code == 503
        assert response.json()['detail']['code'] == 'PRICING_UNAVAILABLE'
    finally:
        app.state.pricing_client = None


def test_missing_pricing_client():
    app.state.pricing_client = None
    response = TestClient(app).get('/api/plugin/info')
    assert response.status_code == 503
