"""
Shared pytest fixtures for pricing engine tests.
"""

import sys
import os
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

# Set minimal environment variables for testing
os.environ.setdefault('PRICING_REGION', 'us-east-1')
os.environ.setdefault('LOG_LEVEL', 'DEBUG')

import pytest
from fastapi.testclient import TestClient
from awscost.main import app
from awscost.pricing.pricing_client import PricingClient


def on_demand_term(sku, price, unit='Hrs', begin_range='0'):
    """One on-demand term with a single price dimension."""
    return {
        f'{sku}.JRTCKXETXF': {
            'priceDimensions': {
                f'{sku}.JRTCKXETXF.6YS6EN2CT7': {
                    'unit': unit,
                    'beginRange': begin_range,
                    'endRange': 'Inf',
                    'pricePerUnit': {'USD': price},
                }
            }
        }
    }


def make_offer(service_code, products):
    """
    Build an offer file from (sku, family, attributes, price, unit) tuples.

    A price of None leaves the SKU without on-demand terms.
    """
    offer = {
        'offerCode': service_code,
        'publicationDate': '2024-05-01T00:00:00Z',
        'products': {},
        'terms': {'OnDemand': {}},
    }
    for sku, family, attributes, price, unit in products:
        attrs = {'locationType': 'AWS Region', 'location': 'US East (N. Virginia)'}
        attrs.update(attributes)
        offer['products'][sku] = {'sku': sku, 'productFamily': family, 'attributes': attrs}
        if price is not None:
            offer['terms']['OnDemand'][sku] = on_demand_term(sku, price, unit)
    return offer


def ec2_instance(sku, instance_type, price, operating_system='Linux', tenancy='Shared', **extra):
    attributes = {
        'instanceType': instance_type,
        'operatingSystem': operating_system,
        'tenancy': tenancy,
        'capacitystatus': 'Used',
        'preInstalledSw': 'NA',
        'licenseModel': 'No License required',
    }
    attributes.update(extra)
    return (sku, 'Compute Instance', attributes, price, 'Hrs')


def build_sample_offers():
    """Small but realistic us-east-1 catalog covering every indexed service."""
    ec2_products = [
        ec2_instance('EC2T2MICRO', 't2.micro', '0.0116000000'),
        ec2_instance('EC2T3MICRO', 't3.micro', '0.0104000000'),
        ec2_instance('EC2T3SMALL', 't3.small', '0.0208000000'),
        ec2_instance('EC2T4GMICRO', 't4g.micro', '0.0084000000'),
        ec2_instance('EC2M4LARGE', 'm4.large', '0.1000000000'),
        ec2_instance('EC2M5LARGE', 'm5.large', '0.0960000000'),
        ec2_instance('EC2M6ILARGE', 'm6i.large', '0.0960000000'),
        ec2_instance('EC2M6GLARGE', 'm6g.large', '0.0770000000'),
        ec2_instance('EC2M7GLARGE', 'm7g.large', '0.0816000000'),
        ec2_instance('EC2C4LARGE', 'c4.large', '0.1000000000'),
        ec2_instance('EC2C5LARGE', 'c5.large', '0.1100000000'),
        ec2_instance('EC2C6GLARGE', 'c6g.large', '0.0680000000'),
        # Graviton option priced above its x86 counterpart
        ec2_instance('EC2R5LARGE', 'r5.large', '0.1260000000'),
        ec2_instance('EC2R6GLARGE', 'r6g.large', '0.1300000000'),
        ec2_instance('EC2T3MICROWIN', 't3.micro', '0.0196000000', operating_system='Windows'),
        ec2_instance('EC2T3MICRODED', 't3.micro', '0.0114000000', tenancy='Dedicated'),
        # Not on-demand shared capacity: must be filtered out
        ec2_instance('EC2T3MICROUNUSED', 't3.micro', '0.0000000000',
                     capacitystatus='UnusedCapacityReservation'),
        ec2_instance('EC2T3MICROSQL', 't3.micro', '0.0500000000', preInstalledSw='SQL Web'),
        ec2_instance('EC2T3MICROLZ', 't3.micro', '0.0125000000', locationType='AWS Local Zone'),
        # Malformed price
        ec2_instance('EC2BADPRICE', 't3.nano', 'not-a-number'),
        # No on-demand terms
        ec2_instance('EC2NOTERMS', 't3.xlarge', None),
        ('EBSGP2', 'Storage', {'volumeApiName': 'gp2', 'volumeType': 'General Purpose'},
         '0.1000000000', 'GB-Mo'),
        ('EBSGP3', 'Storage', {'volumeApiName': 'gp3', 'volumeType': 'General Purpose'},
         '0.0800000000', 'GB-Mo'),
    ]

    rds_products = [
        ('RDST3MICRO', 'Database Instance', {
            'instanceType': 'db.t3.micro', 'databaseEngine': 'MySQL',
            'deploymentOption': 'Single-AZ', 'licenseModel': 'No license required',
        }, '0.0170000000', 'Hrs'),
        ('RDST3MICROMAZ', 'Database Instance', {
            'instanceType': 'db.t3.micro', 'databaseEngine': 'MySQL',
            'deploymentOption': 'Multi-AZ', 'licenseModel': 'No license required',
        }, '0.0340000000', 'Hrs'),
        ('RDSSTORAGEGP2', 'Database Storage', {
            'databaseEngine': 'MySQL', 'volumeType': 'General Purpose',
            'deploymentOption': 'Single-AZ',
        }, '0.1150000000', 'GB-Mo'),
    ]

    s3_products = [
        ('S3STANDARD', 'Storage', {'volumeType': 'Standard', 'servicecode': 'AmazonS3'},
         '0.0230000000', 'GB-Mo'),
        ('S3STANDARDIA', 'Storage', {
            'volumeType': 'Standard - Infrequent Access', 'servicecode': 'AmazonS3',
        }, '0.0125000000', 'GB-Mo'),
    ]

    lambda_products = [
        ('LAMBDAREQ', 'Serverless', {'group': 'AWS-Lambda-Requests'}, '0.0000002000', 'Requests'),
        ('LAMBDADUR', 'Serverless', {'group': 'AWS-Lambda-Duration'}, '0.0000166667', 'Lambda-GB-Second'),
        ('LAMBDAREQARM', 'Serverless', {'group': 'AWS-Lambda-Requests-ARM'}, '0.0000002000', 'Requests'),
        ('LAMBDADURARM', 'Serverless', {'group': 'AWS-Lambda-Duration-ARM'}, '0.0000133334', 'Lambda-GB-Second'),
    ]

    eks_products = [
        ('EKSSTANDARD', 'Compute', {
            'servicecode': 'AmazonEKS', 'usagetype': 'USE1-AmazonEKS-Hours:perCluster',
        }, '0.1000000000', 'Hours'),
        ('EKSEXTENDED', 'Compute', {
            'servicecode': 'AmazonEKS', 'usagetype': 'USE1-AmazonEKS-Hours:extendedSupport',
        }, '0.6000000000', 'Hours'),
    ]

    dynamodb_products = [
        ('DDBREAD', 'Amazon DynamoDB PayPerRequest Throughput', {
            'group': 'DDB-ReadUnits', 'usagetype': 'ReadRequestUnits',
        }, '0.0000001250', 'ReadRequestUnits'),
        ('DDBWRITE', 'Amazon DynamoDB PayPerRequest Throughput', {
            'group': 'DDB-WriteUnits', 'usagetype': 'WriteRequestUnits',
        }, '0.0000006250', 'WriteRequestUnits'),
        ('DDBRCU', 'Provisioned IOPS', {
            'group': 'DDB-ReadUnits', 'usagetype': 'ReadCapacityUnit-Hrs',
        }, '0.0001300000', 'ReadCapacityUnit-Hrs'),
        ('DDBWCU', 'Provisioned IOPS', {
            'group': 'DDB-WriteUnits', 'usagetype': 'WriteCapacityUnit-Hrs',
        }, '0.0006500000', 'WriteCapacityUnit-Hrs'),
        ('DDBSTORAGE', 'Database Storage', {
            'volumeType': 'Amazon DynamoDB - Indexed DataStore', 'usagetype': 'TimedStorage-ByteHrs',
        }, '0.2500000000', 'GB-Mo'),
    ]

    elb_products = [
        ('ALBHOURS', 'Load Balancer-Application', {'usagetype': 'LoadBalancerUsage'}, '0.0225000000', 'Hrs'),
        ('ALBLCU', 'Load Balancer-Application', {'usagetype': 'LCUUsage'}, '0.0080000000', 'LCU-Hrs'),
        ('NLBHOURS', 'Load Balancer-Network', {'usagetype': 'LoadBalancerUsage'}, '0.0225000000', 'Hrs'),
        ('NLBLCU', 'Load Balancer-Network', {'usagetype': 'LCUUsage'}, '0.0060000000', 'NLCU-Hrs'),
    ]

    offers = {
        'AmazonEC2': make_offer('AmazonEC2', ec2_products),
        'AmazonRDS': make_offer('AmazonRDS', rds_products),
        'AmazonS3': make_offer('AmazonS3', s3_products),
        'AWSLambda': make_offer('AWSLambda', lambda_products),
        'AmazonEKS': make_offer('AmazonEKS', eks_products),
        'AmazonDynamoDB': make_offer('AmazonDynamoDB', dynamodb_products),
        'AWSELB': make_offer('AWSELB', elb_products),
    }

    # Free tier first: the indexed storage rate must be the paid tier
    offers['AmazonDynamoDB']['terms']['OnDemand']['DDBSTORAGE'] = {
        'DDBSTORAGE.JRTCKXETXF': {
            'priceDimensions': {
                'DDBSTORAGE.JRTCKXETXF.FREE': {
                    'unit': 'GB-Mo', 'beginRange': '0', 'endRange': '25',
                    'pricePerUnit': {'USD': '0.0000000000'},
                },
                'DDBSTORAGE.JRTCKXETXF.PAID': {
                    'unit': 'GB-Mo', 'beginRange': '25', 'endRange': 'Inf',
                    'pricePerUnit': {'USD': '0.2500000000'},
                },
            }
        }
    }
    return offers


@pytest.fixture
def sample_offers():
    """Fresh copy of the sample us-east-1 catalog."""
    return build_sample_offers()


@pytest.fixture
def pricing_client(sample_offers):
    """Pricing client over the sample catalog."""
    return PricingClient('us-east-1', lambda: sample_offers)


@pytest.fixture
def client(pricing_client):
    """FastAPI test client with the sample pricing client attached."""
    app.state.pricing_client = pricing_client
    yield TestClient(app)
    app.state.pricing_client = None
