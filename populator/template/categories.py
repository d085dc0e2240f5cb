"""
类目归一化模块 (Category Normalizer Module)
==========================================

将上游的自由文本类目（含拼写错误与同义词）映射为模板回退占位符使用的
规范键，例如 "Profesional Fees" -> "professional.fees"。

同义词表是不可变配置（CategoryConfig），由调用方注入，而非进程级可变单例。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional

import yaml

from populator.ir import ELIGIBLE_STATUSES, MappingStatus
from populator.logger import get_logger

logger = get_logger(__name__)

RE_WHITESPACE = re.compile(r"\s+")

CATEGORY_SYNONYMS: Mapping[str, str] = MappingProxyType({
    # Site costs / land acquisition
    "site costs": "site.costs",
    "purchase costs": "site.costs",
    "land costs": "site.costs",
    "land acquisition": "site.costs",
    "acquisition costs": "site.costs",
    "site": "site.costs",

    # Professional fees, including the typos extraction keeps producing
    "professional fees": "professional.fees",
    "professional": "professional.fees",
    "fees": "professional.fees",
    "consultants": "professional.fees",
    "consultant fees": "professional.fees",
    "profesional fees": "professional.fees",
    "profesional.fees": "professional.fees",
    "profesional": "professional.fees",
    "professioal fees": "professional.fees",
    "professioal.fees": "professional.fees",
    "professioal": "professional.fees",

    # Construction / development costs
    "construction costs": "construction.costs",
    "net construction costs": "construction.costs",
    "build costs": "construction.costs",
    "construction": "construction.costs",
    "building costs": "construction.costs",
    "build": "construction.costs",
    "development costs": "construction.costs",
    "development": "construction.costs",
    "dev costs": "construction.costs",

    # Financing costs (extraction merges legal fees in here)
    "financing costs": "financing.costs",
    "financing/legal fees": "financing.costs",
    "financing.legal fees": "financing.costs",
    "financing legal fees": "financing.costs",
    "financing": "financing.costs",
    "finance": "financing.costs",
    "finance costs": "financing.costs",
    "loan costs": "financing.costs",
    "interest": "financing.costs",
    "legal fees": "financing.costs",

    # Disposal / sales costs
    "disposal costs": "disposal.costs",
    "disposal fees": "disposal.costs",
    "disposal": "disposal.costs",
    "sales costs": "disposal.costs",
    "selling costs": "disposal.costs",
    "marketing": "disposal.costs",
    "marketing costs": "disposal.costs",

    # Plots / units
    "plots": "plots",
    "plot": "plots",
    "units": "plots",
    "unit": "plots",
    "houses": "plots",
    "house": "plots",
    "developments": "plots",
    "homes": "plots",
    "home": "plots",
    "properties": "plots",
    "property": "plots",
    "dwellings": "plots",

    # Revenue
    "revenue": "revenue",
    "sales": "revenue",
    "income": "revenue",
    "gross development value": "revenue",
    "gdv": "revenue",

    # Profit
    "profit": "profit",
    "profits": "profit",
    "margin": "profit",
    "returns": "profit",

    # Other
    "other": "other",
    "uncategorized": "other",
    "miscellaneous": "other",
    "misc": "other",
    "general": "other",
})


@dataclass(frozen=True)
class CategoryConfig:
    """
    Immutable engine configuration shared by the normalizer, the code
    lookup and the assignment engine.

    Attributes:
        synonyms: lowercase raw label -> canonical category key.
        eligible_statuses: mapping statuses whose items may be written
            into a template.
    """

    synonyms: Mapping[str, str] = field(default_factory=lambda: CATEGORY_SYNONYMS)
    eligible_statuses: FrozenSet[MappingStatus] = ELIGIBLE_STATUSES

    def with_synonyms(self, extra: Mapping[str, str]) -> "CategoryConfig":
        """返回合并了额外同义词的新配置（额外条目覆盖内置条目）。"""
        merged: Dict[str, str] = dict(self.synonyms)
        for raw, canonical in extra.items():
            if not isinstance(raw, str) or not isinstance(canonical, str):
                continue
            key = raw.strip().lower()
            value = canonical.strip().lower()
            if key and value:
                merged[key] = value
        return CategoryConfig(synonyms=MappingProxyType(merged), eligible_statuses=self.eligible_statuses)

    @property
    def canonical_keys(self) -> FrozenSet[str]:
        return frozenset(self.synonyms.values())


DEFAULT_CATEGORY_CONFIG = CategoryConfig()


def normalize_category(raw: Any, config: CategoryConfig = DEFAULT_CATEGORY_CONFIG) -> str:
    """
    将原始类目映射为规范键。

    先小写并去除首尾空白，在同义词表中查找；未命中时把内部空白替换为 "."。
    对任意输入都返回字符串，从不抛出异常。
    """
    text = "" if raw is None else str(raw)
    lower = text.lower().strip()
    canonical = config.synonyms.get(lower)
    if canonical:
        return canonical
    return RE_WHITESPACE.sub(".", lower)


def is_known_category(raw: Any, config: CategoryConfig = DEFAULT_CATEGORY_CONFIG) -> bool:
    text = "" if raw is None else str(raw)
    return text.lower().strip() in config.synonyms


def load_synonyms_file(path: str) -> Dict[str, str]:
    """
    读取 YAML 同义词扩展文件。

    文件可以是 ``{raw: canonical}`` 映射，或包含 ``synonyms`` 映射的对象。
    """
    p = Path(path).expanduser()
    if not p.exists():
        raise FileNotFoundError(f"category synonyms file not found: {p}")
    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if isinstance(raw, dict) and isinstance(raw.get("synonyms"), dict):
        raw = raw["synonyms"]
    if not isinstance(raw, dict):
        raise ValueError(f"category synonyms file must contain a mapping: {p}")
    return {str(k): str(v) for k, v in raw.items() if isinstance(k, str) and isinstance(v, str)}


def build_category_config(synonyms_path: Optional[str] = None) -> CategoryConfig:
    """根据配置构造 CategoryConfig；未提供扩展文件时返回默认配置。"""
    if not synonyms_path:
        return DEFAULT_CATEGORY_CONFIG
    extra = load_synonyms_file(synonyms_path)
    logger.info("Loaded %d extra category synonyms from %s", len(extra), synonyms_path)
    return DEFAULT_CATEGORY_CONFIG.with_synonyms(extra)
