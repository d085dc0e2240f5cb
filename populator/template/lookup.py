"""
编码查找表 (Code Lookup Table)
=============================

按 itemCode 索引可填充的数据项，支持带括号、去括号以及大小写不敏感的匹配。
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, Optional

from populator.ir import DataItem
from populator.logger import get_logger
from populator.template.categories import DEFAULT_CATEGORY_CONFIG, CategoryConfig

logger = get_logger(__name__)

RE_OUTER_BRACKETS = re.compile(r"^<|>$")


def strip_brackets(code: str) -> str:
    return RE_OUTER_BRACKETS.sub("", code)


class CodeLookup:
    """
    itemCode → DataItem 查找表。

    只收录 mappingStatus 为 matched / confirmed 且 itemCode 非空的数据项。
    同一编码出现多次时，后出现的数据项覆盖先出现的。
    """

    def __init__(self, items: Iterable[DataItem], config: CategoryConfig = DEFAULT_CATEGORY_CONFIG) -> None:
        self._exact: Dict[str, DataItem] = {}
        self._lower: Dict[str, DataItem] = {}
        for item in items:
            if item.mapping_status not in config.eligible_statuses:
                continue
            code = (item.item_code or "").strip()
            if not code:
                continue
            for key in (code, strip_brackets(code)):
                if not key:
                    continue
                self._exact[key] = item
                self._lower[key.lower()] = item
        logger.debug("CodeLookup: %d exact keys, %d case-insensitive keys", len(self._exact), len(self._lower))

    def __len__(self) -> int:
        return len(self._exact)

    def __contains__(self, token: str) -> bool:
        return self.lookup(token) is not None

    def lookup(self, token: str) -> Optional[DataItem]:
        """依次尝试：原样匹配 → 去括号匹配 → 大小写不敏感匹配。"""
        inner = strip_brackets(token)
        item = self._exact.get(token)
        if item is None:
            item = self._exact.get(inner)
        if item is None:
            item = self._lower.get(token.lower())
        if item is None:
            item = self._lower.get(inner.lower())
        return item
