"""
配置模块 (Configuration Module)
==============================

从环境变量和 .env 文件加载应用配置，包括模板下载超时、模板大小上限、
类目同义词扩展文件等设置。
"""

from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import field_validator
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """
    应用配置类，继承自 Pydantic BaseSettings，支持从环境变量自动加载。

    属性:
        TEMPLATE_FETCH_TIMEOUT: 通过 URL 下载模板的总超时秒数
        TEMPLATE_FETCH_CONNECT_TIMEOUT: 建立连接的超时秒数
        MAX_TEMPLATE_BYTES: 接受的模板文件最大字节数
        CATEGORY_SYNONYMS_PATH: 可选的 YAML 文件，追加类目同义词
        OUTPUT_DIR: CLI / 导出服务写出文件的目录
        LOG_LEVEL: 日志级别
    """
    TEMPLATE_FETCH_TIMEOUT: float = 60.0
    TEMPLATE_FETCH_CONNECT_TIMEOUT: float = 10.0
    MAX_TEMPLATE_BYTES: int = 50 * 1024 * 1024
    CATEGORY_SYNONYMS_PATH: Optional[str] = None
    OUTPUT_DIR: str = "output"
    LOG_LEVEL: str = "INFO"

    @field_validator("TEMPLATE_FETCH_TIMEOUT", "TEMPLATE_FETCH_CONNECT_TIMEOUT", "MAX_TEMPLATE_BYTES")
    @classmethod
    def validate_positive(cls, v):
        """超时与大小上限必须为正数。"""
        if v is None or v <= 0:
            raise ValueError("timeouts and MAX_TEMPLATE_BYTES must be positive")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = (v or "").strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported LOG_LEVEL: {v!r}")
        return level

    class Config:
        env_file = ".env"
        case_sensitive = False


# 全局单例，避免重复加载配置
_settings_instance = None


def get_settings() -> Settings:
    """
    获取配置单例。

    首次调用时创建 Settings 实例并缓存，后续调用返回同一实例。
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def reset_settings() -> None:
    """重置配置单例，用于测试或环境变量变更后重新加载。"""
    global _settings_instance
    _settings_instance = None
