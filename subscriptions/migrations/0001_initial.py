"""
Initial schema for the subscription replica, audit trail and sync queue.
"""

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='ProductTag',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('product_id', models.BigIntegerField(db_index=True)),
                ('tag', models.CharField(choices=[('current', 'Current'), ('prepaid', 'Prepaid'), ('skippable', 'Skippable'), ('switchable', 'Switchable')], db_index=True, max_length=20)),
                ('theme_id', models.CharField(blank=True, default='', help_text='Storefront theme the tag applies to (blank = all themes)', max_length=50)),
                ('active_start', models.DateTimeField()),
                ('active_end', models.DateTimeField(blank=True, help_text='Blank = open window', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['product_id', 'tag', '-active_start'],
                'indexes': [
                    models.Index(fields=['tag', 'active_start', 'active_end'], name='producttag_window_idx'),
                    models.Index(fields=['product_id', 'tag'], name='producttag_product_tag_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('shopify_id', models.BigIntegerField(unique=True)),
                ('title', models.CharField(max_length=255)),
                ('handle', models.CharField(blank=True, max_length=255)),
            ],
            options={
                'ordering': ['title'],
            },
        ),
        migrations.CreateModel(
            name='ProductVariant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('variant_id', models.BigIntegerField(unique=True)),
                ('sku', models.CharField(blank=True, max_length=100)),
                ('title', models.CharField(blank=True, max_length=255)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='variants', to='subscriptions.product')),
            ],
        ),
        migrations.CreateModel(
            name='Customer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('customer_id', models.BigIntegerField(help_text='Remote ledger customer id', unique=True)),
                ('shopify_customer_id', models.BigIntegerField(blank=True, null=True, unique=True)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('first_name', models.CharField(blank=True, max_length=100)),
                ('last_name', models.CharField(blank=True, max_length=100)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name='Subscription',
            fields=[
                ('subscription_id', models.BigIntegerField(primary_key=True, serialize=False)),
                ('customer_id', models.BigIntegerField(db_index=True)),
                ('address_id', models.BigIntegerField(blank=True, null=True)),
                ('shopify_product_id', models.BigIntegerField(db_index=True)),
                ('shopify_variant_id', models.BigIntegerField(blank=True, null=True)),
                ('product_title', models.CharField(blank=True, max_length=255)),
                ('sku', models.CharField(blank=True, max_length=100)),
                ('price', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('quantity', models.PositiveIntegerField(default=1)),
                ('status', models.CharField(choices=[('ACTIVE', 'Active'), ('CANCELLED', 'Cancelled'), ('EXPIRED', 'Expired'), ('ONETIME', 'One-time')], db_index=True, default='ACTIVE', max_length=20)),
                ('is_prepaid', models.BooleanField(default=False)),
                ('next_charge_scheduled_at', models.DateTimeField(blank=True, db_index=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('order_interval_unit', models.CharField(blank=True, max_length=20)),
                ('order_interval_frequency', models.CharField(blank=True, max_length=20)),
                ('order_day_of_month', models.CharField(blank=True, max_length=20, null=True)),
                ('order_day_of_week', models.CharField(blank=True, max_length=20, null=True)),
                ('raw_line_item_properties', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'ordering': ['subscription_id'],
                'indexes': [
                    models.Index(fields=['customer_id', 'status'], name='subscription_customer_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Order',
            fields=[
                ('order_id', models.BigIntegerField(primary_key=True, serialize=False)),
                ('customer_id', models.BigIntegerField(blank=True, db_index=True, null=True)),
                ('status', models.CharField(choices=[('QUEUED', 'Queued'), ('SUCCESS', 'Success'), ('ERROR', 'Error'), ('REFUNDED', 'Refunded'), ('SKIPPED', 'Skipped'), ('CANCELLED', 'Cancelled')], db_index=True, default='QUEUED', max_length=20)),
                ('is_prepaid', models.BooleanField(default=False)),
                ('scheduled_at', models.DateTimeField(db_index=True)),
                ('shipped_date', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'ordering': ['scheduled_at'],
                'indexes': [
                    models.Index(fields=['status', 'is_prepaid', 'scheduled_at'], name='order_queue_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='OrderLineItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('subscription_id', models.BigIntegerField(db_index=True)),
                ('shopify_product_id', models.BigIntegerField(blank=True, null=True)),
                ('shopify_variant_id', models.BigIntegerField(blank=True, null=True)),
                ('title', models.CharField(blank=True, max_length=255)),
                ('variant_title', models.CharField(blank=True, max_length=255)),
                ('sku', models.CharField(blank=True, max_length=100)),
                ('quantity', models.PositiveIntegerField(default=1)),
                ('properties', models.JSONField(blank=True, default=list)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='line_items', to='subscriptions.order')),
            ],
            options={
                'ordering': ['order', 'pk'],
            },
        ),
        migrations.CreateModel(
            name='SkipReason',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('customer_id', models.BigIntegerField(db_index=True)),
                ('shopify_customer_id', models.BigIntegerField(blank=True, null=True)),
                ('subscription_id', models.BigIntegerField(db_index=True)),
                ('charge_id', models.BigIntegerField(blank=True, null=True)),
                ('skipped_to', models.DateTimeField(blank=True, null=True)),
                ('skip_status', models.BooleanField(default=False)),
                ('reason', models.TextField(blank=True, null=True)),
                ('detail', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
            ],
            options={
                'ordering': ['-created_at', '-pk'],
                'indexes': [
                    models.Index(fields=['subscription_id', 'created_at'], name='skipreason_sub_idx'),
                    models.Index(fields=['customer_id', 'created_at'], name='skipreason_customer_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ProductSwitch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('customer_id', models.BigIntegerField(db_index=True)),
                ('subscription_id', models.BigIntegerField(db_index=True)),
                ('from_product_id', models.BigIntegerField(blank=True, null=True)),
                ('to_product_id', models.BigIntegerField(blank=True, null=True)),
                ('order_ids', models.JSONField(blank=True, default=list)),
                ('switch_status', models.BooleanField(default=False)),
                ('reason', models.TextField(blank=True, null=True)),
                ('detail', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
            ],
            options={
                'verbose_name_plural': 'Product switches',
                'ordering': ['-created_at', '-pk'],
                'indexes': [
                    models.Index(fields=['subscription_id', 'created_at'], name='productswitch_sub_idx'),
                    models.Index(fields=['customer_id', 'created_at'], name='productswitch_customer_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SyncJob',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('skip', 'Skip'), ('switch', 'Switch')], max_length=10)),
                ('subscription_id', models.BigIntegerField(db_index=True)),
                ('payload', models.JSONField(default=dict)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('running', 'Running'), ('succeeded', 'Succeeded'), ('failed', 'Failed'), ('rejected', 'Rejected')], db_index=True, default='pending', max_length=20)),
                ('attempts', models.PositiveIntegerField(default=0)),
                ('celery_task_id', models.CharField(blank=True, db_index=True, max_length=255, null=True)),
                ('last_error', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('finished_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'ordering': ['pk'],
                'indexes': [
                    models.Index(fields=['subscription_id', 'status'], name='syncjob_sub_status_idx'),
                    models.Index(fields=['status', 'created_at'], name='syncjob_status_created_idx'),
                ],
            },
        ),
    ]
