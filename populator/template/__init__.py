"""
Template layer: placeholder scanning, category normalization, the
three-pass assignment engine and the population entry points.
"""

from populator.template.categories import (
    CATEGORY_SYNONYMS,
    DEFAULT_CATEGORY_CONFIG,
    CategoryConfig,
    normalize_category,
)
from populator.template.engine import PopulationEngine
from populator.template.formatter import format_value
from populator.template.lookup import CodeLookup
from populator.template.populator import (
    fetch_template_bytes,
    populate_template,
    populate_template_from_url,
)

__all__ = [
    "CATEGORY_SYNONYMS",
    "DEFAULT_CATEGORY_CONFIG",
    "CategoryConfig",
    "CodeLookup",
    "PopulationEngine",
    "fetch_template_bytes",
    "format_value",
    "normalize_category",
    "populate_template",
    "populate_template_from_url",
]
