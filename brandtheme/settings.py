"""
抽出設定の管理
取得・解析・クラスタリングの上限値を一箇所にまとめ、環境変数（.env）で上書きできるようにする。
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; BrandThemeExtractor/1.0)"

DEFAULT_SETTINGS = {
    # 取得
    "max_import_depth": 2,
    "timeout": 5.0,
    "cache_ttl": 3600.0,
    "max_content_size": 5 * 1024 * 1024,
    "max_logo_size": 10 * 1024 * 1024,
    "max_redirects": 5,
    "max_stylesheets": 25,
    "user_agent": DEFAULT_USER_AGENT,
    # ロゴ取得を許可するドメイン（空なら制限なし）
    "logo_allowed_domains": (),
    # 色抽出
    "saturation_threshold": 0.15,
    "max_candidates": 20,
    # クラスタリング・パレット
    "similarity_threshold": 30.0,
    "max_palette_size": 8,
    "kmeans_max_iterations": 100,
    # アクセシビリティ（WCAG AA）
    "contrast_target": 4.5,
}

ENV_PREFIX = "BRANDTHEME_"


@dataclass(frozen=True)
class ExtractorSettings:
    """テーマ抽出パイプライン全体の設定値"""

    max_import_depth: int = DEFAULT_SETTINGS["max_import_depth"]
    timeout: float = DEFAULT_SETTINGS["timeout"]
    cache_ttl: float = DEFAULT_SETTINGS["cache_ttl"]
    max_content_size: int = DEFAULT_SETTINGS["max_content_size"]
    max_logo_size: int = DEFAULT_SETTINGS["max_logo_size"]
    max_redirects: int = DEFAULT_SETTINGS["max_redirects"]
    max_stylesheets: int = DEFAULT_SETTINGS["max_stylesheets"]
    user_agent: str = DEFAULT_SETTINGS["user_agent"]
    logo_allowed_domains: tuple[str, ...] = field(default=DEFAULT_SETTINGS["logo_allowed_domains"])
    saturation_threshold: float = DEFAULT_SETTINGS["saturation_threshold"]
    max_candidates: int = DEFAULT_SETTINGS["max_candidates"]
    similarity_threshold: float = DEFAULT_SETTINGS["similarity_threshold"]
    max_palette_size: int = DEFAULT_SETTINGS["max_palette_size"]
    kmeans_max_iterations: int = DEFAULT_SETTINGS["kmeans_max_iterations"]
    contrast_target: float = DEFAULT_SETTINGS["contrast_target"]

    def __post_init__(self):
        if self.max_import_depth < 0:
            raise ValueError("max_import_depth は0以上で指定してください")
        if self.timeout <= 0:
            raise ValueError("timeout は正の値で指定してください")
        if self.max_content_size <= 0 or self.max_logo_size <= 0:
            raise ValueError("サイズ上限は正の値で指定してください")
        if self.max_redirects < 0:
            raise ValueError("max_redirects は0以上で指定してください")
        if not 1 <= self.max_palette_size <= 8:
            raise ValueError("max_palette_size は1〜8で指定してください")

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "ExtractorSettings":
        """BRANDTHEME_* 環境変数から設定を組み立てる。未指定の項目はデフォルト値"""
        env = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = env.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            overrides[f.name] = _coerce(f.name, raw.strip())
        return cls(**overrides)

    def with_overrides(self, **kwargs) -> "ExtractorSettings":
        """一部だけ差し替えたコピーを返す"""
        return replace(self, **kwargs)


def _coerce(name: str, raw: str):
    default = DEFAULT_SETTINGS[name]
    try:
        if isinstance(default, tuple):
            return tuple(
                item.strip().lower() for item in raw.split(",") if item.strip()
            )
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name.upper()} の値が不正です: {raw!r}") from e
    return raw
