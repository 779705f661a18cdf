"""
Tests for the subscription JSON API.
"""

import json

import pytest

from subscriptions.models import SkipReason, SyncJob


@pytest.fixture
def frozen_now(monkeypatch, now_jan3):
    monkeypatch.setattr('django.utils.timezone.now', lambda: now_jan3)
    return now_jan3


def _post(client, url, data=None):
    return client.post(url, data=json.dumps(data or {}), content_type='application/json')


@pytest.mark.django_db
class TestReadViews:

    def test_customer_subscriptions_in_remote_format(self, client, subscription):
        response = client.get('/subscriptions', {'shopify_id': 9001})

        assert response.status_code == 200
        [payload] = response.json()['subscriptions']
        assert payload['id'] == 501
        assert payload['next_charge_scheduled_at'] == '2024-01-20T12:00:00'

    def test_unknown_customer(self, client):
        assert client.get('/subscriptions', {'shopify_id': 1}).status_code == 404

    def test_single_subscription(self, client, subscription):
        response = client.get('/subscription/501')
        assert response.json()['subscription']['sku'] == 'LVR-3'

    def test_missing_subscription(self, client, db):
        assert client.get('/subscription/404').status_code == 404

    def test_sizes(self, client, subscription):
        response = client.get('/subscription/501/sizes')
        assert response.json()['sizes'] == {'leggings': 'M', 'tops': 'S'}

    def test_skippable_listing(self, client, subscription, frozen_now):
        response = client.get('/skippable_subscriptions', {'shopify_id': 9001})

        data = response.json()['data']
        assert data['count'] == 1
        assert data['subscriptions'][0]['skippable'] is True


@pytest.mark.django_db
class TestUpdateView:

    def test_partial_update(self, client, subscription):
        response = client.put(
            '/subscription/501',
            data=json.dumps({'sku': 'NEW-SKU', 'unknown_field': 1}),
            content_type='application/json',
        )

        assert response.status_code == 200
        body = response.json()
        assert body['data']['updated'] == ['sku']
        assert body['data']['subscription']['sku'] == 'NEW-SKU'

    def test_invalid_value(self, client, subscription):
        response = client.put(
            '/subscription/501', data=json.dumps({'quantity': 'lots'}), content_type='application/json'
        )

        assert response.status_code == 400
        assert response.json()['code'] == 'INVALID_FIELD'

    def test_invalid_json(self, client, subscription):
        response = client.put('/subscription/501', data='{not json', content_type='application/json')
        assert response.status_code == 400


@pytest.mark.django_db
class TestActionViews:

    def test_skip_accepted(self, client, subscription, frozen_now):
        response = _post(client, '/subscription/501/skip', {'shopify_customer_id': 9001, 'reason': 'Away'})

        assert response.status_code == 200
        assert response.json()['ok'] is True
        assert SyncJob.objects.get().payload['reason'] == 'Away'

    def test_skip_rejected_is_conflict(self, client, subscription, frozen_now):
        subscription.status = 'CANCELLED'
        subscription.save()

        response = _post(client, '/subscription/501/skip', {'shopify_customer_id': 9001})

        assert response.status_code == 409
        assert response.json()['code'] == 'NOT_ELIGIBLE'
        assert SkipReason.objects.get().skip_status is False

    def test_skip_requires_post(self, client, subscription):
        assert client.get('/subscription/501/skip').status_code == 405

    def test_switch_with_product(self, client, subscription, frozen_now):
        response = _post(client, '/subscription/501/switch', {'product_id': '4242'})

        assert response.status_code == 200
        assert response.json()['data']['target_product_id'] == 4242

    @pytest.mark.parametrize('body', ['[1]', '"x"', '42'])
    def test_non_object_body_is_bad_request(self, client, subscription, body):
        for url in ('/subscription/501/skip', '/subscription/501/switch'):
            response = client.post(url, data=body, content_type='application/json')
            assert response.status_code == 400

        assert SyncJob.objects.count() == 0

    def test_switch_rejects_non_numeric_product(self, client, subscription):
        response = _post(client, '/subscription/501/switch', {'product_id': 'abc'})
        assert response.status_code == 400
