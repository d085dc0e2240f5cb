"""
占位符语法 (Placeholder Grammar)
===============================

- 具体编码:   ``<site.purchase.price>``
- 类目回退:   ``<all.professional.fees.name>`` / ``<all.professional.fees.value>``
- 编号集合:   ``<all.professional.fees.name.1>`` / ``<all.professional.fees.value.1>``
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

# Any <...> token; non-overlapping, left to right.
RE_TOKEN = re.compile(r"<([^<>]+)>")

# Inside formula text only code-like tokens count, so "A1<B1,1,0)&IF(C1>" never matches.
RE_FORMULA_TOKEN = re.compile(r"<([A-Za-z0-9_.\-\[\]]+)>")

RE_WHOLE_TOKEN = re.compile(r"^<[^<>]+>$")

RE_FALLBACK_NUMBERED = re.compile(r"^<all\.([a-z.]+)\.(name|value)\.(\d+)>$", re.IGNORECASE)
RE_FALLBACK_DEFAULT = re.compile(r"^<all\.([a-z.]+)\.(name|value)>$", re.IGNORECASE)

FALLBACK_PREFIX = "<all."

DEFAULT_SLOT = "default"


class TokenKind(str, Enum):
    SPECIFIC_CODE = "specific_code"
    FALLBACK_DEFAULT = "fallback_default"
    FALLBACK_NUMBERED = "fallback_numbered"


class FallbackField(str, Enum):
    NAME = "name"
    VALUE = "value"


@dataclass(frozen=True)
class PlaceholderToken:
    """
    单元格文本中的一个占位符。

    text 含尖括号；inner 为括号内文本。category / field / slot 仅对类目回退有效，
    slot 为 None 表示默认（无编号）回退。
    """
    text: str
    inner: str
    kind: TokenKind
    category: Optional[str] = None
    field: Optional[FallbackField] = None
    slot: Optional[int] = None

    @property
    def is_fallback(self) -> bool:
        return self.kind is not TokenKind.SPECIFIC_CODE


def classify_token(text: str) -> PlaceholderToken:
    """对单个 ``<...>`` 占位符分类：编号集合优先，其次默认回退，否则为具体编码。"""
    inner = text[1:-1]
    m = RE_FALLBACK_NUMBERED.match(text)
    if m:
        return PlaceholderToken(
            text=text,
            inner=inner,
            kind=TokenKind.FALLBACK_NUMBERED,
            category=m.group(1),
            field=FallbackField(m.group(2).lower()),
            slot=int(m.group(3)),
        )
    m = RE_FALLBACK_DEFAULT.match(text)
    if m:
        return PlaceholderToken(
            text=text,
            inner=inner,
            kind=TokenKind.FALLBACK_DEFAULT,
            category=m.group(1),
            field=FallbackField(m.group(2).lower()),
        )
    return PlaceholderToken(text=text, inner=inner, kind=TokenKind.SPECIFIC_CODE)


def find_tokens(cell_text: str, *, formula: bool = False) -> Iterator[PlaceholderToken]:
    pattern = RE_FORMULA_TOKEN if formula else RE_TOKEN
    for match in pattern.finditer(cell_text):
        yield classify_token(match.group(0))


def strip_tokens(cell_text: str, *, formula: bool = False) -> str:
    pattern = RE_FORMULA_TOKEN if formula else RE_TOKEN
    return pattern.sub("", cell_text)


def is_whole_token(cell_text: str) -> bool:
    return bool(RE_WHOLE_TOKEN.match(cell_text))


def is_fallback_text(token_text: str) -> bool:
    """判断占位符文本是否属于类目回退命名空间（包括格式不规范的 ``<all.…>``）。"""
    return token_text.lower().startswith(FALLBACK_PREFIX)
