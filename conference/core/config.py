"""
conference.core.config
~~~~~~~~~~~~~~~~~~~~~~

集中式配置管理，基于 pydantic-settings 自动从 ``.env`` 文件加载。

支持多环境配置（dev / test / prod），加载顺序为:
  1. 环境变量（最高优先级）
  2. ``.env.{ENVIRONMENT}`` 环境专属文件
  3. ``.env`` 基础文件
  4. 字段默认值（最低优先级）
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 读取当前环境标识（在 Settings 类定义之前，用于决定加载哪个 .env 文件）
_CURRENT_ENV: str = os.getenv("ENVIRONMENT", "dev")


class Settings(BaseSettings):
    """全局配置对象，字段值按如下优先级加载：环境变量 > .env.{env} > .env > 默认值。"""

    # ── 基础 ──────────────────────────────────────────────────────────
    PROJECT_NAME: str = Field(default="Conference Signaling Client", description="项目名称")
    VERSION: str = Field(default="0.1.0", description="版本号")
    ENVIRONMENT: Literal["dev", "test", "prod"] = Field(
        default="dev",
        description="运行环境：dev / test / prod",
    )
    LOG_LEVEL: str = Field(default="INFO", description="日志级别（可被环境属性覆盖）")

    # ── 信令 ──────────────────────────────────────────────────────────
    SIGNALING_URL: str = Field(
        default="ws://localhost:5080/WebRTCAppEE/websocket",
        description="信令服务 WebSocket 地址",
    )
    CONNECT_TIMEOUT: float = Field(default=5.0, gt=0, description="建立信令连接的超时（秒）")
    ROOM_POLL_INTERVAL: float = Field(default=5.0, gt=0, description="房间成员轮询间隔（秒）")

    # ── 统计 ──────────────────────────────────────────────────────────
    STATS_BASE_URL: str | None = Field(
        default=None,
        description="媒体服务应用的 HTTP 地址，为空时由 SIGNALING_URL 推导",
    )
    STATS_POLL_INTERVAL: float = Field(default=10.0, gt=0, description="观众数轮询间隔（秒）")
    STATS_REQUEST_TIMEOUT: float = Field(default=5.0, gt=0, description="统计请求超时（秒）")
    STOP_STATS_ON_LEAVE: bool = Field(
        default=False,
        description="离开房间时是否同时停止观众数轮询",
    )

    # ── Pydantic Settings ─────────────────────────────────────────────
    # 先加载 .env.{env} 再加载 .env，前者优先级更高
    model_config = SettingsConfigDict(
        env_file=(f".env.{_CURRENT_ENV}", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── 环境判断 ──────────────────────────────────────────────────────

    @property
    def is_prod(self) -> bool:
        """当前是否为生产环境。"""
        return self.ENVIRONMENT == "prod"

    @property
    def is_test(self) -> bool:
        """当前是否为测试环境。"""
        return self.ENVIRONMENT == "test"

    # ── 派生配置 ──────────────────────────────────────────────────────

    @property
    def effective_log_level(self) -> str:
        """根据环境自动推断日志级别。

        - dev  → INFO
        - test → DEBUG（方便排查测试失败）
        - prod → WARNING（减少噪音）

        如果环境变量中显式设置了 LOG_LEVEL，会覆盖此默认推断。
        """
        env_log = os.getenv("LOG_LEVEL")
        if env_log:
            return env_log
        if self.is_prod:
            return "WARNING"
        if self.is_test:
            return "DEBUG"
        return "INFO"

    @property
    def stats_base_url(self) -> str:
        """统计接口的 HTTP 基础地址。

        未显式配置时由信令地址推导：``ws`` → ``http``，``wss`` → ``https``，
        并去掉结尾的 ``/websocket``。例如
        ``wss://media.example.com:5443/WebRTCAppEE/websocket`` →
        ``https://media.example.com:5443/WebRTCAppEE``。
        """
        if self.STATS_BASE_URL:
            return self.STATS_BASE_URL.rstrip("/")
        return derive_http_base(self.SIGNALING_URL)


def derive_http_base(signaling_url: str) -> str:
    """把信令 WebSocket 地址换算为同一应用的 HTTP 基础地址。"""
    url = signaling_url.rstrip("/")
    if url.startswith("wss://"):
        url = "https://" + url[len("wss://"):]
    elif url.startswith("ws://"):
        url = "http://" + url[len("ws://"):]
    if url.endswith("/websocket"):
        url = url[: -len("/websocket")]
    return url


@lru_cache
def get_settings() -> Settings:
    """获取全局 Settings 单例（带缓存，避免重复解析 .env）。"""
    return Settings()


settings: Settings = get_settings()
