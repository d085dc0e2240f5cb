"""
编码诊断模块 (Codification Diagnostics Module)
=============================================

排查"为什么某些行没有被填充"：统计各状态的数据项数量、
每个原始类目归一化后的键、会命中的回退占位符，以及模板期望但缺少数据的类目。

未命中同义词表的类目使用 rapidfuzz (WRatio) 推荐最接近的规范键，
便于模板作者或运营人员补充同义词。
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional

from rapidfuzz import fuzz, process

from populator.ir import DataItem, MappingStatus
from populator.logger import get_logger
from populator.template.aggregator import aggregate_fallback_rows
from populator.template.categories import (
    DEFAULT_CATEGORY_CONFIG,
    CategoryConfig,
    is_known_category,
    normalize_category,
)
from populator.template.scanner import scan_workbook
from populator.workbook import load_workbook_bytes

logger = get_logger(__name__)

SUGGESTION_SCORE_CUTOFF = 80.0
UNKNOWN_CATEGORY = "Unknown"


def suggest_category(raw: str, config: CategoryConfig = DEFAULT_CATEGORY_CONFIG) -> Optional[str]:
    """
    为未登记的类目推荐最接近的规范键。

    同时与同义词表的原始标签和规范键比较，返回命中项对应的规范键；
    得分低于阈值时返回 None。
    """
    text = (raw or "").strip().lower()
    if not text:
        return None
    choices: Dict[str, str] = dict(config.synonyms)
    for canonical in config.canonical_keys:
        choices.setdefault(canonical, canonical)
        choices.setdefault(canonical.replace(".", " "), canonical)
    result = process.extractOne(text, list(choices.keys()), scorer=fuzz.WRatio, score_cutoff=SUGGESTION_SCORE_CUTOFF)
    if not result:
        return None
    return choices[result[0]]


def template_expected_categories(template_bytes: bytes) -> List[str]:
    """扫描模板，返回回退占位符引用的类目（保持首次出现顺序）。"""
    wb = load_workbook_bytes(template_bytes)
    try:
        rows = aggregate_fallback_rows(scan_workbook(wb))
    finally:
        wb.close()
    seen: "OrderedDict[str, None]" = OrderedDict()
    for row in rows:
        seen.setdefault(row.category, None)
    return list(seen.keys())


def _item_summary(item: DataItem) -> Dict[str, Any]:
    return {
        "originalName": item.original_name,
        "itemCode": item.item_code,
        "suggestedCode": item.suggested_code,
        "value": item.value,
        "category": item.category,
        "confidence": item.confidence,
    }


def build_codification_report(
    items: Iterable[DataItem],
    template_bytes: Optional[bytes] = None,
    config: CategoryConfig = DEFAULT_CATEGORY_CONFIG,
) -> Dict[str, Any]:
    """
    生成编码诊断报告（JSON 可序列化的字典）。

    参数:
        items: 上游编码流水线产出的数据项
        template_bytes: 可选的模板，提供时额外报告模板期望的类目
        config: 类目归一化配置
    """
    item_list = list(items)

    by_status: Dict[str, List[Dict[str, Any]]] = {status.value: [] for status in MappingStatus}
    by_raw_category: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    normalization: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    usable_by_category: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()

    for item in item_list:
        usable = item.mapping_status in config.eligible_statuses
        by_status[item.mapping_status.value].append(_item_summary(item))

        raw = item.category or UNKNOWN_CATEGORY
        by_raw_category.setdefault(raw, []).append({
            "originalName": item.original_name,
            "mappingStatus": item.mapping_status.value,
            "value": item.value,
        })

        normalized = normalize_category(raw, config)
        entry = normalization.get(raw)
        if entry is None:
            entry = {
                "rawCategory": raw,
                "normalizedCategory": normalized,
                "totalItems": 0,
                "usableItems": 0,
                "wouldMatchFallback": f"<all.{normalized}.name>",
                "inSynonymTable": is_known_category(raw, config),
            }
            if not entry["inSynonymTable"] and normalized not in config.canonical_keys:
                entry["suggestedCategory"] = suggest_category(raw, config)
            normalization[raw] = entry
        entry["totalItems"] += 1
        if usable:
            entry["usableItems"] += 1
            usable_by_category.setdefault(normalized, []).append({
                "originalName": item.original_name,
                "itemCode": item.item_code,
                "value": item.value,
            })

    usable_count = len(by_status[MappingStatus.MATCHED.value]) + len(by_status[MappingStatus.CONFIRMED.value])
    stats = {
        "total": len(item_list),
        "matched": len(by_status[MappingStatus.MATCHED.value]),
        "confirmed": len(by_status[MappingStatus.CONFIRMED.value]),
        "suggested": len(by_status[MappingStatus.SUGGESTED.value]),
        "pending_review": len(by_status[MappingStatus.PENDING_REVIEW.value]),
        "unmatched": len(by_status[MappingStatus.UNMATCHED.value]),
        "usable": usable_count,
        "notUsable": len(item_list) - usable_count,
    }

    report: Dict[str, Any] = {
        "stats": stats,
        "categoryNormalization": list(normalization.values()),
        "usableByNormalizedCategory": [
            {
                "normalizedCategory": category,
                "fallbackPattern": f"<all.{category}.name>",
                "itemCount": len(members),
                "items": members,
            }
            for category, members in usable_by_category.items()
        ],
        "itemsByStatus": by_status,
        "itemsByRawCategory": dict(by_raw_category),
        "supportedFallbackPatterns": supported_fallback_patterns(config),
        "tips": _tips(item_list, stats),
    }

    if template_bytes is not None:
        expected = template_expected_categories(template_bytes)
        available = set(usable_by_category.keys())
        report["templateCategories"] = expected
        report["templateCategoriesWithoutItems"] = [
            category for category in expected
            if category not in available and normalize_category(category, config) not in available
        ]

    logger.debug("build_codification_report: %s", stats)
    return report


def supported_fallback_patterns(config: CategoryConfig = DEFAULT_CATEGORY_CONFIG) -> List[str]:
    patterns: List[str] = []
    for category in sorted(config.canonical_keys):
        patterns.append(f"<all.{category}.name>")
        patterns.append(f"<all.{category}.value>")
    return patterns


def _tips(items: List[DataItem], stats: Dict[str, int]) -> Dict[str, str]:
    mentions_plots = any(
        "plot" in item.category.lower() or "unit" in item.category.lower()
        for item in items
    )
    if mentions_plots:
        plots_tip = (
            "Items with category containing 'plot' or 'unit' found. "
            "Check if their status is 'confirmed' or 'matched'."
        )
    else:
        plots_tip = "No items with category containing 'plot' found. Check if the extraction correctly identified plots."

    if stats["notUsable"] > 0:
        usable_tip = (
            f"{stats['notUsable']} items have status other than 'confirmed' or 'matched'. "
            "Confirm these in the Data Library to use them."
        )
    else:
        usable_tip = "All items are usable (confirmed or matched)."

    return {"plotsNotPopulating": plots_tip, "itemsNotUsable": usable_tip}
