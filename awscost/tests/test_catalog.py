"""
Tests for catalog ingestion and index building.
"""

import gzip
import json

import pytest
from awscost.core.errors import PricingInitializationError
from awscost.pricing.catalog import (
    build_indices,
    load_catalog,
    parse_price,
    select_on_demand_price,
    split_combined_offer,
)


def test_parse_price_is_strict():
    """Only finite non-negative decimal strings are prices."""
    assert parse_price('0.0104000000') == pytest.approx(0.0104)
    assert parse_price('0') == 0.0
    assert parse_price('') is None
    assert parse_price('abc') is None
    assert parse_price('-1') is None
    assert parse_price('NaN') is None
    assert parse_price('inf') is None
    assert parse_price(0.5) is None


def test_select_on_demand_price_skips_free_tier():
    """First positive dimension by beginRange wins over a free tier."""
    terms = {
        'T': {
            'priceDimensions': {
                'B': {'unit': 'GB-Mo', 'beginRange': '25', 'pricePerUnit': {'USD': '0.25'}},
                'A': {'unit': 'GB-Mo', 'beginRange': '0', 'pricePerUnit': {'USD': '0.00'}},
            }
        }
    }
    assert select_on_demand_price(terms) == ('GB-Mo', '0.25')


def test_select_on_demand_price_all_zero():
    terms = {'T': {'priceDimensions': {'A': {'unit': 'Hrs', 'pricePerUnit': {'USD': '0.0'}}}}}
    assert select_on_demand_price(terms) == ('Hrs', '0.0')


def test_select_on_demand_price_without_dimensions():
    assert select_on_demand_price(None) is None
    assert select_on_demand_price({'T': {'priceDimensions': {}}}) is None


def test_build_indices_filters_ec2_compute(sample_offers):
    """Only used, plain, regional capacity is indexed."""
    indices = build_indices(sample_offers, 'us-east-1')

    assert indices.ec2[('t3.micro', 'linux', 'shared')] == pytest.approx(0.0104)
    assert indices.ec2[('t3.micro', 'windows', 'shared')] == pytest.approx(0.0196)
    assert indices.ec2[('t3.micro', 'linux', 'dedicated')] == pytest.approx(0.0114)
    assert ('t3.nano', 'linux', 'shared') not in indices.ec2
    assert ('t3.xlarge', 'linux', 'shared') not in indices.ec2


def test_build_indices_counts_stats(sample_offers):
    indices = build_indices(sample_offers, 'us-east-1')
    ec2_stats = indices.stats['AmazonEC2']

    assert ec2_stats.seen == len(sample_offers['AmazonEC2']['products'])
    assert ec2_stats.malformed == 1
    assert ec2_stats.unpriced == 1
    # unused capacity, pre-installed software, local zone
    assert ec2_stats.filtered == 3
    assert ec2_stats.seen == ec2_stats.kept + ec2_stats.filtered + ec2_stats.unpriced + ec2_stats.malformed


def test_build_indices_drops_other_region_skus(sample_offers):
    """SKUs located in another region never shadow the configured region's rates."""
    products = sample_offers['AmazonEC2']['products']
    terms = sample_offers['AmazonEC2']['terms']['OnDemand']
    products['EC2T3MICROPDX'] = {
        'sku': 'EC2T3MICROPDX',
        'productFamily': 'Compute Instance',
        'attributes': dict(products['EC2T3MICRO']['attributes'], location='US West (Oregon)'),
    }
    terms['EC2T3MICROPDX'] = {
        'EC2T3MICROPDX.JRTCKXETXF': {
            'priceDimensions': {
                'EC2T3MICROPDX.JRTCKXETXF.6YS6EN2CT7': {
                    'unit': 'Hrs', 'beginRange': '0', 'pricePerUnit': {'USD': '0.0010000000'},
                }
            }
        }
    }

    indices = build_indices(sample_offers, 'us-east-1')

    assert indices.ec2[('t3.micro', 'linux', 'shared')] == pytest.approx(0.0104)
    assert indices.stats['AmazonEC2'].filtered == 4


def test_build_indices_other_services(sample_offers):
    indices = build_indices(sample_offers, 'us-east-1')

    assert indices.ebs['gp2'] == pytest.approx(0.10)
    assert indices.ebs['gp3'] == pytest.approx(0.08)
    assert indices.rds_instance[('db.t3.micro', 'mysql', 'single-az')] == pytest.approx(0.017)
    assert len(indices.rds_instance) == 1
    assert indices.rds_storage[('mysql', 'general purpose')] == pytest.approx(0.115)
    assert indices.s3['standard'] == pytest.approx(0.023)
    assert indices.lambda_rates[('arm64', 'duration')] == pytest.approx(0.0000133334)
    assert indices.eks['standard'] == pytest.approx(0.10)
    assert indices.eks['extended'] == pytest.approx(0.60)
    assert indices.dynamodb.storage_gb_month == pytest.approx(0.25)
    assert indices.dynamodb.provisioned_wcu_hour == pytest.approx(0.00065)
    assert indices.load_balancers['alb'].capacity_unit_hourly == pytest.approx(0.008)
    assert indices.load_balancers['nlb'].capacity_unit_hourly == pytest.approx(0.006)
    assert indices.publication_date == '2024-05-01T00:00:00Z'


def test_indices_are_read_only(sample_offers):
    indices = build_indices(sample_offers, 'us-east-1')

    with pytest.raises(TypeError):
        indices.ebs['gp2'] = 0.0


def test_duplicate_keys_keep_cheapest(sample_offers):
    """Result does not depend on product order."""
    products = sample_offers['AmazonEC2']['products']
    terms = sample_offers['AmazonEC2']['terms']['OnDemand']
    products['EC2T3MICRODUP'] = dict(products['EC2T3MICRO'], sku='EC2T3MICRODUP')
    terms['EC2T3MICRODUP'] = {
        'X': {'priceDimensions': {'Y': {'unit': 'Hrs', 'pricePerUnit': {'USD': '0.0500'}}}}
    }

    indices = build_indices(sample_offers, 'us-east-1')
    assert indices.ec2[('t3.micro', 'linux', 'shared')] == pytest.approx(0.0104)


def test_build_indices_without_offers():
    with pytest.raises(PricingInitializationError):
        build_indices({}, 'us-east-1')


def test_build_indices_without_usable_prices():
    offers = {'AmazonEC2': {'products': {'X': {'productFamily': 'Data Transfer', 'attributes': {}}}}}
    with pytest.raises(PricingInitializationError):
        build_indices(offers, 'us-east-1')


def test_malformed_product_is_not_fatal(sample_offers):
    sample_offers['AmazonEC2']['products']['BROKEN'] = 'not-an-object'
    sample_offers['AmazonEC2']['products']['BADATTRS'] = {
        'productFamily': 'Compute Instance', 'attributes': {'vcpu': 2},
    }

    indices = build_indices(sample_offers, 'us-east-1')
    assert indices.stats['AmazonEC2'].malformed == 3
    assert indices.ec2[('t3.micro', 'linux', 'shared')] == pytest.approx(0.0104)


def test_split_combined_offer(sample_offers):
    combined = {'publicationDate': '2024-05-01', 'products': {}, 'terms': {'OnDemand': {}}}
    for service_code in ('AmazonEC2', 'AmazonS3'):
        for sku, product in sample_offers[service_code]['products'].items():
            product['attributes']['servicecode'] = service_code
            combined['products'][sku] = product
        combined['terms']['OnDemand'].update(sample_offers[service_code]['terms']['OnDemand'])

    per_service = split_combined_offer(combined)

    assert set(per_service) == {'AmazonEC2', 'AmazonS3'}
    assert 'S3STANDARD' in per_service['AmazonS3']['products']
    assert 'S3STANDARD' in per_service['AmazonS3']['terms']['OnDemand']
    assert 'S3STANDARD' not in per_service['AmazonEC2']['products']


def test_load_catalog_from_cache_dir(tmp_path, sample_offers):
    """Reads <ServiceCode>/<region>.json[.gz] files."""
    ec2_dir = tmp_path / 'AmazonEC2'
    ec2_dir.mkdir()
    with gzip.open(ec2_dir / 'us-east-1.json.gz', 'wt', encoding='utf-8') as f:
        json.dump(sample_offers['AmazonEC2'], f)
    s3_dir = tmp_path / 'AmazonS3'
    s3_dir.mkdir()
    (s3_dir / 'us-east-1.json').write_text(json.dumps(sample_offers['AmazonS3']))

    offers = load_catalog('us-east-1', cache_dir=str(tmp_path))

    assert set(offers) == {'AmazonEC2', 'AmazonS3'}


def test_load_catalog_missing(tmp_path):
    with pytest.raises(PricingInitializationError):
        load_catalog('us-east-1', cache_dir=str(tmp_path))


def test_load_catalog_unreadable_file(tmp_path):
    bad = tmp_path / 'aws_pricing_us-east-1.json'
    bad.write_text('{not json')

    with pytest.raises(PricingInitializationError):
        load_catalog('us-east-1', catalog_file=str(bad))
