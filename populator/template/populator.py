"""
模板填充入口 (Template Populator)
================================

populate_template:          模板字节 + 数据项 → PopulationResult
populate_template_from_url: 通过 HTTP GET 获取模板后填充（非 2xx 立即失败，不重试）

每次调用都从字节重新构建工作簿，调用结束后丢弃，不保留任何跨调用状态。
"""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable, Optional

import httpx

from populator.config import get_settings
from populator.errors import TemplateFetchError
from populator.ir import DataItem, PopulationResult
from populator.logger import get_logger
from populator.template.categories import CategoryConfig, build_category_config
from populator.template.engine import PopulationEngine
from populator.workbook import load_workbook_bytes, workbook_to_bytes

logger = get_logger(__name__)


@lru_cache(maxsize=8)
def _category_config_for(synonyms_path: Optional[str]) -> CategoryConfig:
    return build_category_config(synonyms_path)


def default_category_config() -> CategoryConfig:
    """按当前配置（CATEGORY_SYNONYMS_PATH）构造引擎配置。"""
    return _category_config_for(get_settings().CATEGORY_SYNONYMS_PATH)


def populate_template(
    template_bytes: bytes,
    items: Iterable[DataItem],
    config: Optional[CategoryConfig] = None,
) -> PopulationResult:
    """
    用数据项填充模板并返回结果。

    工作簿无法解析时抛出 WorkbookLoadError，不会返回部分填充的结果。
    """
    item_list = list(items)
    logger.info("Starting population with %d items", len(item_list))

    wb = load_workbook_bytes(template_bytes)
    try:
        report = PopulationEngine(config or default_category_config()).run(wb, item_list)
        output = workbook_to_bytes(wb)
    finally:
        wb.close()

    stats = report.stats()
    logger.info("Population complete: %s", stats.to_dict())
    return PopulationResult(
        output_bytes=output,
        stats=stats,
        matched_placeholders=report.matched,
        unmatched_placeholders=report.unmatched,
    )


async def fetch_template_bytes(url: str, client: Optional[httpx.AsyncClient] = None) -> bytes:
    """
    HTTP GET 模板字节。

    非 2xx 响应或传输错误都抛出 TemplateFetchError（包含状态码与响应正文），不重试。
    """
    logger.info("Fetching template from URL: %s", url)
    settings = get_settings()
    owns_client = client is None
    if client is None:
        timeout = httpx.Timeout(settings.TEMPLATE_FETCH_TIMEOUT, connect=settings.TEMPLATE_FETCH_CONNECT_TIMEOUT)
        client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    try:
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            raise TemplateFetchError(url, None, f"{type(exc).__name__}: {exc}") from exc
        if not response.is_success:
            raise TemplateFetchError(url, response.status_code, response.text)
        data = response.content
    finally:
        if owns_client:
            await client.aclose()

    logger.info("Template fetched, size: %d bytes", len(data))
    return data


async def populate_template_from_url(
    url: str,
    items: Iterable[DataItem],
    config: Optional[CategoryConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> PopulationResult:
    template_bytes = await fetch_template_bytes(url, client=client)
    return populate_template(template_bytes, items, config=config)
