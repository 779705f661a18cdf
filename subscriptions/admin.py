# subscriptions/admin.py
"""
Admin configuration for subscriptions app.
"""

from django.contrib import admin, messages
from django.utils.html import format_html
from subscriptions.models import (
    ProductTag, Product, ProductVariant, Customer, Subscription,
    Order, OrderLineItem, SkipReason, ProductSwitch, SyncJob
)


# ==============================================================================
# PRODUCT TAG ADMIN
# ==============================================================================

@admin.register(ProductTag)
class ProductTagAdmin(admin.ModelAdmin):
    list_display = ('product_id', 'tag', 'theme_id', 'active_start', 'active_end', 'window_state')
    list_filter = ('tag', 'theme_id')
    search_fields = ('product_id',)
    ordering = ('product_id', 'tag', '-active_start')
    date_hierarchy = 'active_start'

    def window_state(self, obj):
        if obj.is_open():
            return format_html('<span style="color: green;">open</span>')
        return format_html('<span style="color: gray;">closed</span>')
    window_state.short_description = 'Window'


# ==============================================================================
# CATALOGUE ADMIN
# ==============================================================================

class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0
    fields = ('variant_id', 'sku', 'title')


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ('title', 'shopify_id', 'handle')
    search_fields = ('title', 'handle', 'shopify_id')
    inlines = [ProductVariantInline]


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ('customer_id', 'shopify_customer_id', 'email', 'first_name', 'last_name')
    search_fields = ('email', 'customer_id', 'shopify_customer_id', 'last_name')


# ==============================================================================
# SUBSCRIPTION & ORDER ADMIN
# ==============================================================================

@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ('subscription_id', 'customer_id', 'product_title', 'shopify_product_id',
                    'status', 'is_prepaid', 'next_charge_scheduled_at')
    list_filter = ('status', 'is_prepaid')
    search_fields = ('subscription_id', 'customer_id', 'product_title', 'sku')

    fieldsets = (
        ('Identity', {
            'fields': ('subscription_id', 'customer_id', 'address_id')
        }),
        ('Product', {
            'fields': ('shopify_product_id', 'shopify_variant_id', 'product_title', 'sku', 'price', 'quantity')
        }),
        ('Billing', {
            'fields': ('status', 'is_prepaid', 'next_charge_scheduled_at', 'cancelled_at',
                       'order_interval_unit', 'order_interval_frequency',
                       'order_day_of_month', 'order_day_of_week')
        }),
        ('Line Item Properties', {
            'fields': ('raw_line_item_properties',),
            'classes': ('collapse',)
        }),
    )


class OrderLineItemInline(admin.TabularInline):
    model = OrderLineItem
    extra = 0
    fields = ('subscription_id', 'shopify_product_id', 'title', 'variant_title', 'sku', 'quantity')


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ('order_id', 'customer_id', 'status', 'is_prepaid', 'scheduled_at')
    list_filter = ('status', 'is_prepaid')
    search_fields = ('order_id', 'customer_id')
    date_hierarchy = 'scheduled_at'
    inlines = [OrderLineItemInline]


# ==============================================================================
# AUDIT TRAIL ADMIN (read-only)
# ==============================================================================

class ReadOnlyAdmin(admin.ModelAdmin):

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SkipReason)
class SkipReasonAdmin(ReadOnlyAdmin):
    list_display = ('subscription_id', 'customer_id', 'skipped_to', 'status_badge', 'reason', 'created_at')
    list_filter = ('skip_status',)
    search_fields = ('subscription_id', 'customer_id', 'shopify_customer_id')
    date_hierarchy = 'created_at'

    def status_badge(self, obj):
        color = 'green' if obj.skip_status else 'red'
        label = 'ok' if obj.skip_status else 'failed'
        return format_html('<span style="color: {};">{}</span>', color, label)
    status_badge.short_description = 'Status'


@admin.register(ProductSwitch)
class ProductSwitchAdmin(ReadOnlyAdmin):
    list_display = ('subscription_id', 'customer_id', 'from_product_id', 'to_product_id',
                    'switch_status', 'created_at')
    list_filter = ('switch_status',)
    search_fields = ('subscription_id', 'customer_id')
    date_hierarchy = 'created_at'


# ==============================================================================
# SYNC JOB ADMIN
# ==============================================================================

@admin.register(SyncJob)
class SyncJobAdmin(admin.ModelAdmin):
    list_display = ('id', 'kind', 'subscription_id', 'status', 'attempts', 'created_at', 'finished_at')
    list_filter = ('kind', 'status')
    search_fields = ('subscription_id', 'celery_task_id')
    readonly_fields = ('kind', 'subscription_id', 'payload', 'attempts', 'celery_task_id',
                       'last_error', 'created_at', 'started_at', 'finished_at')
    actions = ['redispatch']

    def redispatch(self, request, queryset):
        from subscriptions.services.job_queue import SyncJobQueue

        queue = SyncJobQueue()
        count = 0
        for row in queryset.filter(status='pending'):
            queue.dispatch(row)
            count += 1
        self.message_user(request, f"Re-dispatched {count} pending job(s).", messages.SUCCESS)
    redispatch.short_description = 'Re-dispatch pending jobs'
