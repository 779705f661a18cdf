"""
Tests for product tag windows and the product classifier.

Verifies:
- Window boundaries (start inclusive, end exclusive, open end)
- Overlapping windows resolve to the latest start
- Opening a window closes the previous open one
- Theme filtering and string product ids
"""

import pytest

from subscriptions.models import ProductTag
from subscriptions.services.product_tags import ProductClassifier
from subscriptions.tests.conftest import REGULAR_PRODUCT, local_dt, tag


@pytest.mark.django_db
class TestActiveTags:
    """Tests for ProductClassifier.active_tags against stored windows."""

    def test_open_window_is_active_after_start(self, regular_tags):
        classifier = ProductClassifier()
        tags = classifier.active_tags(REGULAR_PRODUCT, local_dt(2030, 6, 1))
        assert tags == {'current', 'skippable', 'switchable'}

    def test_start_is_inclusive(self, jan_start):
        tag(REGULAR_PRODUCT, ProductTag.TAG_CURRENT, jan_start, local_dt(2024, 2, 1, 0))
        assert ProductClassifier().active_tags(REGULAR_PRODUCT, jan_start) == {'current'}

    def test_end_is_exclusive(self, jan_start):
        end = local_dt(2024, 2, 1, 0)
        tag(REGULAR_PRODUCT, ProductTag.TAG_CURRENT, jan_start, end)
        assert ProductClassifier().active_tags(REGULAR_PRODUCT, end) == set()

    def test_nothing_active_before_start(self, regular_tags):
        assert ProductClassifier().active_tags(REGULAR_PRODUCT, local_dt(2023, 12, 31)) == set()

    def test_string_product_id_matches(self, regular_tags):
        """Order line-item properties carry product ids as strings."""
        classifier = ProductClassifier()
        assert classifier.has_tags(str(REGULAR_PRODUCT), local_dt(2024, 1, 3), 'skippable', 'current')

    def test_non_numeric_product_id_has_no_tags(self, regular_tags):
        assert ProductClassifier().active_tags('not-a-product', local_dt(2024, 1, 3)) == set()

    def test_has_tags_requires_all(self, jan_start):
        tag(REGULAR_PRODUCT, ProductTag.TAG_CURRENT, jan_start)
        classifier = ProductClassifier()
        assert classifier.has_tags(REGULAR_PRODUCT, local_dt(2024, 1, 3), 'current')
        assert not classifier.has_tags(REGULAR_PRODUCT, local_dt(2024, 1, 3), 'current', 'skippable')

    def test_theme_filter(self, jan_start):
        ProductTag.objects.create(
            product_id=REGULAR_PRODUCT, tag='current', theme_id='summer', active_start=jan_start
        )
        at = local_dt(2024, 1, 3)
        assert ProductClassifier(theme_id='summer').active_tags(REGULAR_PRODUCT, at) == {'current'}
        assert ProductClassifier(theme_id='winter').active_tags(REGULAR_PRODUCT, at) == set()


@pytest.mark.django_db
class TestOverlappingWindows:
    """Overlapping windows for one tag resolve to the latest active_start."""

    def test_latest_start_wins_in_database(self, jan_start):
        end = local_dt(2024, 2, 1, 0)
        tag(REGULAR_PRODUCT, ProductTag.TAG_CURRENT, jan_start, end)
        later = tag(REGULAR_PRODUCT, ProductTag.TAG_CURRENT, local_dt(2024, 1, 10, 0), end)

        windows = ProductClassifier().active_windows(REGULAR_PRODUCT, local_dt(2024, 1, 15))

        assert windows['current'].pk == later.pk

    def test_latest_start_wins_in_memory(self, jan_start):
        end = local_dt(2024, 2, 1, 0)
        early = ProductTag(product_id=REGULAR_PRODUCT, tag='skippable', active_start=jan_start, active_end=end)
        late = ProductTag(
            product_id=REGULAR_PRODUCT, tag='skippable', active_start=local_dt(2024, 1, 5, 0), active_end=end
        )

        windows = ProductClassifier(windows=[late, early]).active_windows(REGULAR_PRODUCT, local_dt(2024, 1, 20))

        assert windows['skippable'] is late


@pytest.mark.django_db
class TestOpenWindowInvariant:
    """At most one open window per product and tag."""

    def test_new_open_window_closes_previous(self, jan_start):
        first = tag(REGULAR_PRODUCT, ProductTag.TAG_CURRENT, jan_start)
        feb = local_dt(2024, 2, 1, 0)
        tag(REGULAR_PRODUCT, ProductTag.TAG_CURRENT, feb)

        first.refresh_from_db()
        assert first.active_end == feb - ProductTag.TICK
        assert ProductTag.objects.open().filter(product_id=REGULAR_PRODUCT, tag='current').count() == 1

    def test_other_tags_are_untouched(self, jan_start):
        skippable = tag(REGULAR_PRODUCT, ProductTag.TAG_SKIPPABLE, jan_start)
        tag(REGULAR_PRODUCT, ProductTag.TAG_CURRENT, local_dt(2024, 2, 1, 0))

        skippable.refresh_from_db()
        assert skippable.is_open()

    def test_open_window_classmethod_is_idempotent(self, jan_start):
        window, created = ProductTag.open_window(REGULAR_PRODUCT, 'current', jan_start)
        again, created_again = ProductTag.open_window(REGULAR_PRODUCT, 'current', jan_start)

        assert created is True
        assert created_again is False
        assert window.pk == again.pk
