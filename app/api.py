"""
API 模块 (API Module)
====================

FastAPI 后端：
- GET  /api/quick-export        健康检查
- POST /api/quick-export        上传模板（或给出模板 URL）与数据项，返回填充后的文件
- POST /api/debug-codification  返回数据项的编码诊断报告
"""

import json
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from app.backend.process import run_quick_export
from populator.diagnostics import build_codification_report
from populator.errors import NoUsableItemsError, TemplateFetchError, WorkbookLoadError
from populator.ir import parse_items
from populator.logger import get_logger
from populator.template.populator import default_category_config

logger = get_logger(__name__)

app = FastAPI(title="Template Populator Backend")


def _parse_items_payload(raw):
    try:
        return parse_items(raw)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid items: {e.errors()}") from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.get("/api/quick-export")
def quick_export_health():
    """健康检查。"""
    return {
        "status": "ok",
        "service": "quick-export",
        "description": "Server-side XLSM/XLSX template population with macro preservation",
        "supportedFormats": ["xlsm", "xlsx"],
    }


@app.post("/api/quick-export")
async def quick_export(
    items: str = Form(...),
    template: Optional[UploadFile] = File(default=None),
    template_url: Optional[str] = Form(default=None),
    document_name: Optional[str] = Form(default=None),
    template_name: Optional[str] = Form(default=None),
):
    """
    快速导出：multipart 表单，items 为数据项 JSON 数组；
    template 文件与 template_url 二选一。返回填充后的二进制文件。
    """
    try:
        raw_items = json.loads(items)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail="items must be valid JSON") from e
    item_list = _parse_items_payload(raw_items)

    template_bytes = await template.read() if template is not None else None
    if template_bytes is None and not template_url:
        raise HTTPException(status_code=400, detail="Either template file or template_url is required")
    if template_bytes is not None and template_url:
        raise HTTPException(status_code=400, detail="Provide either template file or template_url, not both")
    if template_name is None and template is not None and template.filename:
        template_name = template.filename.rsplit(".", 1)[0]

    logger.info("Quick export: %d items, template=%s", len(item_list), template_url or template_name)
    try:
        result = await run_quick_export(
            item_list,
            template_bytes=template_bytes,
            template_url=template_url or None,
            document_name=document_name,
            template_name=template_name,
            config=default_category_config(),
        )
    except (NoUsableItemsError, WorkbookLoadError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except TemplateFetchError as e:
        raise HTTPException(
            status_code=502,
            detail={"error": "Failed to fetch template", "status": e.status_code, "body": e.body[:2000]},
        ) from e

    population = result.population
    return Response(
        content=population.output_bytes,
        media_type=result.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{result.filename}"',
            "X-Population-Stats": json.dumps(population.stats.to_dict()),
            "X-Matched-Count": str(len(population.matched_placeholders)),
            "X-Unmatched-Count": str(len(population.unmatched_placeholders)),
        },
    )


@app.post("/api/debug-codification")
async def debug_codification(request: Request):
    """编码诊断：JSON body 为 {"items": [...]} 或数据项数组。"""
    try:
        data = await request.json()
    except Exception as e:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    item_list = _parse_items_payload(data)
    report = build_codification_report(item_list, config=default_category_config())
    return JSONResponse(report)
