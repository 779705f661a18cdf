# subscriptions/services/product_tags.py
"""
Product classification from time-windowed tags.

Usage:
    classifier = ProductClassifier()
    classifier.active_tags(product_id, now)          # {'current', 'skippable'}
    classifier.has_tags(product_id, now, 'switchable', 'current')
"""

import logging

logger = logging.getLogger(__name__)


class ProductClassifier:
    """
    Resolves which tags a product carries at a point in time.

    Windows are read from ``ProductTag`` unless an explicit sequence of
    windows is given, in which case evaluation happens in memory. Product
    ids are compared as integers; order line-item properties carry them as
    strings.
    """

    def __init__(self, windows=None, theme_id=None):
        self.windows = list(windows) if windows is not None else None
        self.theme_id = theme_id

    def _candidate_windows(self, product_id, at_time):
        if self.windows is not None:
            return [
                window for window in self.windows
                if int(window.product_id) == product_id
                and window.is_active_at(at_time)
                and (self.theme_id is None or window.theme_id == self.theme_id)
            ]
        from subscriptions.models import ProductTag
        return list(
            ProductTag.objects.active(at_time, theme_id=self.theme_id).for_product(product_id)
        )

    def active_windows(self, product_id, at_time):
        """
        Active window per tag for a product.

        Overlapping windows for the same tag resolve to the one with the
        latest ``active_start``.

        Returns:
            {tag: ProductTag}
        """
        product_id = _product_id(product_id)
        if product_id is None:
            return {}
        chosen = {}
        for window in self._candidate_windows(product_id, at_time):
            current = chosen.get(window.tag)
            if current is None or window.active_start > current.active_start:
                chosen[window.tag] = window
        return chosen

    def active_tags(self, product_id, at_time):
        return set(self.active_windows(product_id, at_time))

    def has_tags(self, product_id, at_time, *tags):
        """True when every one of ``tags`` is active for the product."""
        return set(tags).issubset(self.active_tags(product_id, at_time))


def _product_id(value):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric product id: {value!r}")
        return None
