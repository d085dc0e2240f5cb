"""
填充引擎 (Assignment Engine)
===========================

三遍算法，严格按顺序执行：

1. 具体编码：占位符内文本等于某数据项的 itemCode 时写入其值。
2. 类目回退：``<all.{category}.name|value[.N]>`` 行按类目依次填入可用数据项。
3. 残留清理：重新扫描，清除或剥离所有仍然存在的占位符。

每一遍都是纯函数：输入扫描快照、数据项与已消费集合，输出单元格更新列表，
由 PopulationEngine 负责把更新写回工作簿。
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Sequence, Tuple

from openpyxl.workbook.workbook import Workbook

from populator.ir import DataItem, PopulationStats
from populator.logger import get_logger
from populator.template.aggregator import FallbackRow, aggregate_fallback_rows
from populator.template.categories import DEFAULT_CATEGORY_CONFIG, CategoryConfig, normalize_category
from populator.template.formatter import format_value, value_to_text
from populator.template.grammar import is_fallback_text, is_whole_token, strip_tokens
from populator.template.lookup import CodeLookup
from populator.template.scanner import CellScan, scan_workbook
from populator.template.writer import CellUpdate, apply_updates

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Pass outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SpecificCodeOutcome:
    updates: Tuple[CellUpdate, ...] = ()
    matched: Tuple[str, ...] = ()
    unmatched: Tuple[str, ...] = ()
    consumed_ids: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class FallbackOutcome:
    updates: Tuple[CellUpdate, ...] = ()
    fallbacks_inserted: int = 0
    assignments: Tuple[Tuple[FallbackRow, str], ...] = ()


@dataclass(frozen=True)
class CleanupOutcome:
    updates: Tuple[CellUpdate, ...] = ()
    placeholders_cleared: int = 0


@dataclass
class EngineReport:
    """三遍执行后的汇总，供结果收集器生成 PopulationResult。"""
    matched: List[str] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)
    fallback_rows: List[FallbackRow] = field(default_factory=list)
    fallbacks_inserted: int = 0
    placeholders_cleared: int = 0
    consumed_ids: FrozenSet[str] = frozenset()

    def stats(self) -> PopulationStats:
        return PopulationStats(
            total_placeholders=len(self.matched) + len(self.unmatched) + len(self.fallback_rows),
            matched=len(self.matched),
            unmatched=len(self.unmatched),
            fallbacks_inserted=self.fallbacks_inserted,
            placeholders_cleared=self.placeholders_cleared,
        )


def _append_unique(target: List[str], value: str) -> None:
    if value not in target:
        target.append(value)


# ---------------------------------------------------------------------------
# Pass 1: specific codes
# ---------------------------------------------------------------------------

def resolve_specific_codes(scans: Iterable[CellScan], lookup: CodeLookup) -> SpecificCodeOutcome:
    """
    第一遍：解析具体编码占位符。

    占位符即整个单元格文本时写入带类型的值（数字保持为数字，公式可继续引用）；
    否则只替换文本中的占位符子串。未命中的非回退占位符记为 unmatched。
    """
    updates: List[CellUpdate] = []
    matched: List[str] = []
    unmatched: List[str] = []
    consumed: set = set()

    for scan in scans:
        new_value = scan.text
        replaced = False
        for token in scan.specific_tokens:
            item = lookup.lookup(token.text)
            if item is None:
                # Malformed <all.…> tokens belong to the fallback namespace, never "unmatched"
                if not is_fallback_text(token.text):
                    _append_unique(unmatched, token.text)
                continue

            formatted = format_value(item)
            if scan.text == token.text:
                new_value = formatted
            else:
                new_value = str(new_value).replace(token.text, value_to_text(formatted), 1)
            replaced = True
            consumed.add(item.id)
            _append_unique(matched, token.text)
            logger.debug("Matched %s -> %r (%s)", token.text, formatted, item.original_name)

        if replaced:
            updates.append(CellUpdate(
                scan.sheet, scan.row, scan.col, new_value, as_formula=scan.is_formula, array_ref=scan.array_ref,
            ))

    return SpecificCodeOutcome(
        updates=tuple(updates),
        matched=tuple(matched),
        unmatched=tuple(unmatched),
        consumed_ids=frozenset(consumed),
    )


# ---------------------------------------------------------------------------
# Pass 2: category fallbacks
# ---------------------------------------------------------------------------

def group_items_by_category(
    items: Iterable[DataItem],
    config: CategoryConfig = DEFAULT_CATEGORY_CONFIG,
) -> Dict[str, List[DataItem]]:
    """按规范类目键分组可填充的数据项，组内保持输入顺序。"""
    grouped: Dict[str, List[DataItem]] = OrderedDict()
    for item in items:
        if item.mapping_status not in config.eligible_statuses:
            logger.debug("Skipping item '%s' - status is '%s'", item.original_name, item.mapping_status.value)
            continue
        grouped.setdefault(normalize_category(item.category, config), []).append(item)
    return grouped


def _candidate_pool(
    template_category: str,
    by_category: Dict[str, List[DataItem]],
    config: CategoryConfig,
) -> List[DataItem]:
    pool = by_category.get(template_category) or []
    if not pool:
        normalized = normalize_category(template_category, config)
        if normalized != template_category:
            pool = by_category.get(normalized) or []
    return list(pool)


def group_fallback_rows(rows: Sequence[FallbackRow]) -> "OrderedDict[Tuple[str, str, bool], List[FallbackRow]]":
    """
    把回退行分组为 (工作表, 类目, 是否编号) 三元组。

    组内按行号升序（同一行内按编号），所有编号共用一个游标，
    因此同一工作表上的多个编号块依次接续取数据项。
    """
    groups: "OrderedDict[Tuple[str, str, bool], List[FallbackRow]]" = OrderedDict()
    for row in rows:
        groups.setdefault((row.sheet, row.category, row.is_numbered), []).append(row)
    for members in groups.values():
        members.sort(key=lambda r: (r.row, -1 if r.slot is None else r.slot))
    return groups


def assign_category_fallbacks(
    rows: Sequence[FallbackRow],
    items: Iterable[DataItem],
    consumed_ids: FrozenSet[str],
    config: CategoryConfig = DEFAULT_CATEGORY_CONFIG,
) -> FallbackOutcome:
    """
    第二遍：填充类目回退行。

    默认组排除第一遍已消费的数据项；编号组不排除（保留既有行为）。
    每行一个数据项，行或数据项用尽即停止，剩余行的占位符留给第三遍清理。
    """
    by_category = group_items_by_category(items, config)
    if rows:
        logger.debug(
            "Category pools: %s; template expects: %s",
            ", ".join(f"{k}({len(v)})" for k, v in by_category.items()),
            ", ".join(sorted({r.category for r in rows})),
        )

    updates: List[CellUpdate] = []
    assignments: List[Tuple[FallbackRow, str]] = []
    inserted = 0

    for (sheet, category, numbered), members in group_fallback_rows(rows).items():
        pool = _candidate_pool(category, by_category, config)
        if not numbered:
            pool = [item for item in pool if item.id not in consumed_ids]
        if not pool:
            logger.debug("No items for %s fallback '%s' on sheet %s", "numbered" if numbered else "default", category, sheet)
            continue

        for row, item in zip(members, pool):
            if row.name_col is not None:
                updates.append(CellUpdate(row.sheet, row.row, row.name_col, item.original_name))
            if row.value_col is not None:
                updates.append(CellUpdate(row.sheet, row.row, row.value_col, format_value(item)))
            assignments.append((row, item.id))
            inserted += 1

    return FallbackOutcome(updates=tuple(updates), fallbacks_inserted=inserted, assignments=tuple(assignments))


# ---------------------------------------------------------------------------
# Pass 3: residual cleanup
# ---------------------------------------------------------------------------

def plan_residual_cleanup(scans: Iterable[CellScan]) -> CleanupOutcome:
    """
    第三遍：清理残留占位符。

    单元格文本恰好是一个占位符时清空；嵌在长文本中时剥离占位符并去除首尾空白。
    每个被修改的单元格计数一次。
    """
    updates: List[CellUpdate] = []
    for scan in scans:
        if not scan.is_formula and is_whole_token(scan.text):
            updates.append(CellUpdate(scan.sheet, scan.row, scan.col, None))
            continue
        cleaned = strip_tokens(scan.text, formula=scan.is_formula).strip()
        if cleaned != scan.text:
            updates.append(CellUpdate(
                scan.sheet, scan.row, scan.col, cleaned, as_formula=scan.is_formula, array_ref=scan.array_ref,
            ))
    return CleanupOutcome(updates=tuple(updates), placeholders_cleared=len(updates))


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

class PopulationEngine:
    """
    在单个工作簿实例上依次执行三遍算法（就地修改）。

    同一个 Workbook 不可被两个并发调用共享；并行导出请使用独立的工作簿实例。
    """

    def __init__(self, config: CategoryConfig = DEFAULT_CATEGORY_CONFIG) -> None:
        self.config = config

    def run(self, wb: Workbook, items: Sequence[DataItem]) -> EngineReport:
        lookup = CodeLookup(items, self.config)
        logger.info("PopulationEngine: %d items, code lookup has %d entries", len(items), len(lookup))

        scans = scan_workbook(wb)

        # PASS 1
        pass1 = resolve_specific_codes(scans, lookup)
        apply_updates(wb, pass1.updates)

        # PASS 2
        fallback_rows = aggregate_fallback_rows(scans)
        logger.info("PopulationEngine: %d fallback rows", len(fallback_rows))
        pass2 = assign_category_fallbacks(fallback_rows, items, pass1.consumed_ids, self.config)
        apply_updates(wb, pass2.updates)

        # PASS 3
        pass3 = plan_residual_cleanup(scan_workbook(wb))
        apply_updates(wb, pass3.updates)
        logger.info("PopulationEngine: cleared %d remaining placeholder(s)", pass3.placeholders_cleared)

        return EngineReport(
            matched=list(pass1.matched),
            unmatched=[t for t in pass1.unmatched if not is_fallback_text(t)],
            fallback_rows=fallback_rows,
            fallbacks_inserted=pass2.fallbacks_inserted,
            placeholders_cleared=pass3.placeholders_cleared,
            consumed_ids=pass1.consumed_ids,
        )
