"""
后端处理模块 (Backend Process Module)
====================================

封装快速导出流程：筛选可用数据项 → 获取模板 → 填充 → 生成文件名 → 写出文件。
API 与 CLI 共用此模块。
"""

import json
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from populator.errors import NoUsableItemsError
from populator.ir import DataItem, PopulationResult
from populator.logger import get_logger
from populator.template.categories import CategoryConfig
from populator.template.populator import fetch_template_bytes, populate_template
from populator.workbook import XLSM_CONTENT_TYPE, XLSX_CONTENT_TYPE, has_vba

logger = get_logger(__name__)

RE_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
MAX_NAME_PART_LENGTH = 50
DEFAULT_DOCUMENT_PART = "export"
DEFAULT_TEMPLATE_PART = "model"


@dataclass
class QuickExportResult:
    """快速导出结果：文件名、写出路径（未写盘时为 None）、内容类型与填充结果。"""
    filename: str
    content_type: str
    population: PopulationResult
    output_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = self.population.to_dict()
        payload["filename"] = self.filename
        payload["outputPath"] = self.output_path
        return payload


def safe_name(name: str) -> str:
    """把名称中的非 [A-Za-z0-9_-] 字符替换为 "_"，并截断到 50 个字符。"""
    return RE_UNSAFE_FILENAME_CHARS.sub("_", name)[:MAX_NAME_PART_LENGTH]


def build_export_filename(
    document_name: Optional[str],
    template_name: Optional[str],
    *,
    macro_enabled: bool = True,
    export_date: Optional[date] = None,
) -> str:
    """生成导出文件名：{文档}_{模板}_{YYYY-MM-DD}.xlsm|xlsx。"""
    doc_part = safe_name(document_name) if document_name else DEFAULT_DOCUMENT_PART
    template_part = safe_name(template_name) if template_name else DEFAULT_TEMPLATE_PART
    day = (export_date or date.today()).isoformat()
    extension = "xlsm" if macro_enabled else "xlsx"
    return f"{doc_part}_{template_part}_{day}.{extension}"


def select_usable_items(items: Iterable[DataItem]) -> List[DataItem]:
    """只保留 matched / confirmed 的数据项；一个都没有时抛出 NoUsableItemsError。"""
    item_list = list(items)
    usable = [item for item in item_list if item.is_eligible]
    logger.info("Usable items (confirmed/matched): %d of %d", len(usable), len(item_list))
    if not usable:
        raise NoUsableItemsError(
            "No confirmed or matched items to populate. Please confirm item mappings first."
        )
    return usable


def ensure_output_dir(output_dir: str) -> Path:
    """确保输出目录存在，不存在则创建。"""
    output_path = Path(output_dir).resolve()
    output_path.mkdir(parents=True, exist_ok=True)
    return output_path


async def run_quick_export(
    items: Iterable[DataItem],
    *,
    template_bytes: Optional[bytes] = None,
    template_url: Optional[str] = None,
    document_name: Optional[str] = None,
    template_name: Optional[str] = None,
    output_dir: Optional[str] = None,
    export_date: Optional[date] = None,
    config: Optional[CategoryConfig] = None,
) -> QuickExportResult:
    """
    执行一次快速导出。

    template_bytes 与 template_url 必须且只能提供一个。
    提供 output_dir 时把填充后的文件写入该目录。
    """
    if (template_bytes is None) == (template_url is None):
        raise ValueError("Provide exactly one of template_bytes or template_url")

    usable = select_usable_items(items)
    if template_bytes is None:
        template_bytes = await fetch_template_bytes(template_url)

    population = populate_template(template_bytes, usable, config=config)
    macro_enabled = has_vba(template_bytes)
    filename = build_export_filename(
        document_name,
        template_name,
        macro_enabled=macro_enabled,
        export_date=export_date,
    )
    result = QuickExportResult(
        filename=filename,
        content_type=XLSM_CONTENT_TYPE if macro_enabled else XLSX_CONTENT_TYPE,
        population=population,
    )

    if output_dir:
        out_path = ensure_output_dir(output_dir) / filename
        out_path.write_bytes(population.output_bytes)
        result.output_path = str(out_path)
        logger.info("Quick export written: %s", out_path)
    return result


def write_json_output(result: Dict[str, Any], output_path: str) -> str:
    """将结果写入 JSON 文件。"""
    path = Path(output_path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(result, f, ensure_ascii=False, indent=2, default=str)
    return str(path)
