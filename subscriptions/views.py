# subscriptions/views.py
"""
JSON API for storefront subscription management: listing, sizes, skip,
switch and remote-format updates.
"""

import json

from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from subscriptions.models import Customer, Subscription

STATUS_BY_CODE = {
    'NOT_ELIGIBLE': 409,
    'QUEUE_ERROR': 500,
}


def _json_body(request):
    """Parsed JSON object body; ValueError for invalid JSON or a non-object."""
    if not request.body:
        return {}
    data = json.loads(request.body)
    if not isinstance(data, dict):
        raise ValueError("JSON body must be an object")
    return data


def _customer_or_404(request):
    customer = Customer.resolve(request.GET.get('shopify_id'))
    if customer is None:
        return None, JsonResponse({'ok': False, 'reason': 'Customer not found.'}, status=404)
    return customer, None


def _result_response(result):
    if result['ok']:
        return JsonResponse(result)
    return JsonResponse(result, status=STATUS_BY_CODE.get(result.get('code'), 400))


@require_GET
def subscriptions_view(request):
    """All subscriptions of a customer, in remote format."""
    customer, error = _customer_or_404(request)
    if error:
        return error
    subscriptions = Subscription.objects.filter(customer_id=customer.customer_id)
    return JsonResponse({
        'ok': True,
        'subscriptions': [sub.as_recharge() for sub in subscriptions],
    })


@csrf_exempt
@require_http_methods(['GET', 'PUT'])
def subscription_view(request, subscription_id):
    """
    GET: one subscription in remote format.
    PUT: partial update in remote format; unknown keys are ignored.
    """
    from subscriptions.services.subscription_service import SubscriptionActionService

    subscription = get_object_or_404(Subscription, pk=subscription_id)
    if request.method == 'GET':
        return JsonResponse({'ok': True, 'subscription': subscription.as_recharge()})

    try:
        payload = _json_body(request)
    except ValueError:
        return JsonResponse({'ok': False, 'reason': 'Request body must be a JSON object.'}, status=400)

    result = SubscriptionActionService.apply_update(subscription, payload)
    if result['ok']:
        result['data']['subscription'] = subscription.as_recharge()
    return _result_response(result)


@require_GET
def subscription_sizes_view(request, subscription_id):
    subscription = get_object_or_404(Subscription, pk=subscription_id)
    return JsonResponse({'ok': True, 'subscription_id': subscription_id, 'sizes': subscription.sizes})


@require_GET
def skippable_subscriptions_view(request):
    from subscriptions.services.subscription_service import SubscriptionActionService

    customer, error = _customer_or_404(request)
    if error:
        return error
    return _result_response(SubscriptionActionService.skippable_subscriptions(customer))


@csrf_exempt
@require_POST
def skip_view(request, subscription_id):
    """
    Skip this month's charge.

    Body: {"shopify_customer_id": ..., "reason": "..."}
    """
    from subscriptions.services.subscription_service import SubscriptionActionService

    subscription = get_object_or_404(Subscription, pk=subscription_id)
    try:
        data = _json_body(request)
    except ValueError:
        return JsonResponse({'ok': False, 'reason': 'Request body must be a JSON object.'}, status=400)

    result = SubscriptionActionService.request_skip(
        subscription,
        customer_ref=data.get('shopify_customer_id'),
        reason=data.get('reason'),
    )
    return _result_response(result)


@csrf_exempt
@require_POST
def switch_view(request, subscription_id):
    """
    Switch this month's product.

    Body: {"product_id": ...} (optional; the configured alternate is used otherwise)
    """
    from subscriptions.services.subscription_service import SubscriptionActionService

    subscription = get_object_or_404(Subscription, pk=subscription_id)
    try:
        data = _json_body(request)
    except ValueError:
        return JsonResponse({'ok': False, 'reason': 'Request body must be a JSON object.'}, status=400)

    product_id = data.get('product_id')
    if product_id not in (None, ''):
        try:
            product_id = int(product_id)
        except (TypeError, ValueError):
            return JsonResponse({'ok': False, 'reason': 'product_id must be a number.'}, status=400)

    result = SubscriptionActionService.request_switch(subscription, product_id=product_id)
    return _result_response(result)
