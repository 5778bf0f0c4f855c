"""
テーマ定義とプリセット
配色・タイポグラフィ・余白・装飾をまとめたテーマ型と、組み込みプリセット、
CSSカスタムプロパティへの書き出し、アクセシビリティ評価を扱う。
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace

from brandtheme.clustering import DARK_NEUTRALS, ColorPalette, PerceptualClusterer
from brandtheme.colors import contrast_ratio


# 状態色（成功・警告・エラー）はブランド色から推定しない
STATUS_COLORS = {
    "success": "#10b981",
    "warning": "#f59e0b",
    "error": "#ef4444",
}

DARK_CODE_BG = "#1e293b"


@dataclass(frozen=True)
class ThemeColors:
    primary: str
    secondary: str
    accent: str
    background: str
    surface: str
    text: str
    text_secondary: str
    border: str
    code_bg: str
    success: str = STATUS_COLORS["success"]
    warning: str = STATUS_COLORS["warning"]
    error: str = STATUS_COLORS["error"]


@dataclass(frozen=True)
class ThemeTypography:
    font_family: str = "Inter, -apple-system, system-ui, sans-serif"
    heading_font: str = "Inter, -apple-system, system-ui, sans-serif"
    code_font: str = "'Fira Code', Monaco, Consolas, monospace"
    base_size: str = "16px"
    line_height: str = "1.6"
    heading_weights: dict = field(default_factory=lambda: {"h1": 700, "h2": 600, "h3": 600})
    heading_sizes: dict = field(default_factory=lambda: {"h1": "2.5rem", "h2": "2rem", "h3": "1.5rem"})


@dataclass(frozen=True)
class ThemeSpacing:
    section: str = "3rem"
    paragraph: str = "1.5rem"
    list_item: str = "0.5rem"
    density: str = "comfortable"  # compact / comfortable / spacious


@dataclass(frozen=True)
class ThemeStyling:
    border_radius: str = "8px"
    code_border_radius: str = "6px"
    shadow: str = "0 1px 3px rgba(0,0,0,0.1)"


@dataclass(frozen=True)
class ThemeLayout:
    orientation: str = "multi"  # single / multi


@dataclass(frozen=True)
class Theme:
    id: str
    name: str
    colors: ThemeColors
    typography: ThemeTypography = field(default_factory=ThemeTypography)
    spacing: ThemeSpacing = field(default_factory=ThemeSpacing)
    styling: ThemeStyling = field(default_factory=ThemeStyling)
    layout: ThemeLayout = field(default_factory=ThemeLayout)

    def to_dict(self) -> dict:
        return asdict(self)


def theme_from_dict(data: dict) -> Theme:
    """to_dict() の逆変換"""
    return Theme(
        id=data["id"],
        name=data["name"],
        colors=ThemeColors(**data["colors"]),
        typography=ThemeTypography(**data.get("typography", {})),
        spacing=ThemeSpacing(**data.get("spacing", {})),
        styling=ThemeStyling(**data.get("styling", {})),
        layout=ThemeLayout(**data.get("layout", {})),
    )


# =============================================
# プリセット
# =============================================

THEME_PRESETS: dict[str, Theme] = {
    "modern-light": Theme(
        id="modern-light",
        name="Modern Light",
        colors=ThemeColors(
            primary="#2563eb",
            secondary="#64748b",
            accent="#0ea5e9",
            background="#ffffff",
            surface="#f8fafc",
            text="#0f172a",
            text_secondary="#475569",
            border="#e2e8f0",
            code_bg="#f1f5f9",
        ),
    ),
    "modern-dark": Theme(
        id="modern-dark",
        name="Modern Dark",
        colors=ThemeColors(
            primary="#60a5fa",
            secondary="#94a3b8",
            accent="#38bdf8",
            background="#0f172a",
            surface="#1e293b",
            text="#f1f5f9",
            text_secondary="#94a3b8",
            border="#334155",
            code_bg="#1e293b",
            success="#22c55e",
        ),
        styling=ThemeStyling(shadow="0 10px 30px rgba(0,0,0,0.35)"),
    ),
    "corporate-light": Theme(
        id="corporate-light",
        name="Corporate (Light)",
        colors=ThemeColors(
            primary="#1d4ed8",
            secondary="#6b7280",
            accent="#0ea5e9",
            background="#ffffff",
            surface="#f9fafb",
            text="#111827",
            text_secondary="#6b7280",
            border="#e5e7eb",
            code_bg="#f3f4f6",
            success="#15803d",
            warning="#b45309",
            error="#b91c1c",
        ),
        typography=ThemeTypography(
            font_family="-apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif",
            heading_font="-apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif",
            code_font="'Source Code Pro', Monaco, monospace",
            line_height="1.65",
            heading_sizes={"h1": "2.5rem", "h2": "2rem", "h3": "1.25rem"},
        ),
        spacing=ThemeSpacing(section="3.5rem", paragraph="1.25rem"),
        styling=ThemeStyling(border_radius="6px", shadow="0 2px 8px rgba(0,0,0,0.08)"),
    ),
    "corporate-dark": Theme(
        id="corporate-dark",
        name="Corporate (Dark)",
        colors=ThemeColors(
            primary="#60a5fa",
            secondary="#9ca3af",
            accent="#38bdf8",
            background="#0f172a",
            surface="#111827",
            text="#e5e7eb",
            text_secondary="#9ca3af",
            border="#1f2937",
            code_bg="#0b1220",
            success="#22c55e",
        ),
        typography=ThemeTypography(
            code_font="'Source Code Pro', Monaco, monospace",
            line_height="1.65",
            heading_sizes={"h1": "2.5rem", "h2": "2rem", "h3": "1.25rem"},
        ),
        spacing=ThemeSpacing(section="3.5rem", paragraph="1.25rem"),
        styling=ThemeStyling(border_radius="6px", shadow="0 12px 32px rgba(0,0,0,0.35)"),
    ),
    "tech-dev-dark": Theme(
        id="tech-dev-dark",
        name="Tech Developer (Dark)",
        colors=ThemeColors(
            primary="#58a6ff",
            secondary="#8b949e",
            accent="#3fb950",
            background="#0d1117",
            surface="#161b22",
            text="#c9d1d9",
            text_secondary="#8b949e",
            border="#30363d",
            code_bg="#0b1220",
            success="#3fb950",
            warning="#d29922",
            error="#f85149",
        ),
        typography=ThemeTypography(
            font_family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Noto Sans', Helvetica, Arial, sans-serif",
            heading_font="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Noto Sans', Helvetica, Arial, sans-serif",
            code_font="'Fira Code', Menlo, Consolas, monospace",
            base_size="15px",
            line_height="1.55",
            heading_weights={"h1": 700, "h2": 700, "h3": 600},
            heading_sizes={"h1": "2.25rem", "h2": "1.75rem", "h3": "1.25rem"},
        ),
        spacing=ThemeSpacing(section="2.5rem", paragraph="1rem", list_item="0.4rem", density="compact"),
        styling=ThemeStyling(border_radius="6px", shadow="0 8px 24px rgba(0,0,0,0.4)"),
    ),
}

DEFAULT_THEME_ID = "modern-light"


def get_theme_by_id(theme_id: str) -> Theme | None:
    return THEME_PRESETS.get(theme_id)


def get_all_themes() -> list[Theme]:
    return list(THEME_PRESETS.values())


def get_default_theme() -> Theme:
    return THEME_PRESETS[DEFAULT_THEME_ID]


# =============================================
# パレット → テーマ
# =============================================

def theme_from_palette(palette: ColorPalette, theme_id: str, name: str) -> Theme:
    """役割別パレットをテーマにする。コード背景はサーフェス色を流用"""
    colors = ThemeColors(
        primary=palette.primary,
        secondary=palette.secondary,
        accent=palette.accent,
        background=palette.background,
        surface=palette.surface,
        text=palette.text,
        text_secondary=palette.text_secondary,
        border=palette.border,
        code_bg=palette.surface,
    )
    return replace(get_default_theme(), id=theme_id, name=name, colors=colors)


def create_dark_variant(theme: Theme, clusterer: PerceptualClusterer | None = None) -> Theme:
    """
    ブランド色はそのままに、背景・文字色をダーク用の無彩色に差し替える。
    差し替え後もテキストのコントラストはWCAG AAを満たすよう調整する。
    """
    clusterer = clusterer or PerceptualClusterer()
    palette = clusterer.ensure_accessibility(ColorPalette(
        primary=theme.colors.primary,
        secondary=theme.colors.secondary,
        accent=theme.colors.accent,
        **DARK_NEUTRALS,
    ))
    colors = replace(
        theme.colors,
        background=palette.background,
        surface=palette.surface,
        text=palette.text,
        text_secondary=palette.text_secondary,
        border=palette.border,
        code_bg=DARK_CODE_BG,
    )
    theme_id = theme.id[: -len("-light")] if theme.id.endswith("-light") else theme.id
    return replace(theme, id=f"{theme_id}-dark", name=f"{theme.name} (Dark)", colors=colors)


def merge_theme_with_defaults(partial: dict, base: Theme | None = None) -> Theme:
    """
    部分的なテーマ定義（to_dict() と同じ形の辞書）をベーステーマに重ねる。
    セクション（colors, typography など）単位の浅いマージ。
    """
    merged = (base or get_default_theme()).to_dict()
    for key in ("id", "name"):
        if partial.get(key):
            merged[key] = partial[key]
    for section in ("colors", "typography", "spacing", "styling", "layout"):
        merged[section] = {**merged[section], **(partial.get(section) or {})}
    return theme_from_dict(merged)


# =============================================
# 書き出し・評価
# =============================================

def generate_css_variables(theme: Theme) -> str:
    """
    テーマを :root { ... } のCSSカスタムプロパティに変換する。

    >>> print(generate_css_variables(get_default_theme()).splitlines()[1])
      --color-primary: #2563eb;
    """
    lines = []
    for key, value in asdict(theme.colors).items():
        lines.append(f"  --color-{key.replace('_', '-')}: {value};")

    t = theme.typography
    lines.append(f"  --font-family: {t.font_family};")
    lines.append(f"  --font-heading: {t.heading_font};")
    lines.append(f"  --font-code: {t.code_font};")
    lines.append(f"  --font-size-base: {t.base_size};")
    lines.append(f"  --line-height: {t.line_height};")
    for key, value in t.heading_sizes.items():
        lines.append(f"  --font-size-{key}: {value};")
    for key, value in t.heading_weights.items():
        lines.append(f"  --font-weight-{key}: {value};")

    for key, value in asdict(theme.spacing).items():
        if key == "density":
            continue
        lines.append(f"  --spacing-{key.replace('_', '-')}: {value};")

    for key, value in asdict(theme.styling).items():
        lines.append(f"  --{key.replace('_', '-')}: {value};")

    return ":root {\n" + "\n".join(lines) + "\n}"


def evaluate_theme_accessibility(theme: Theme) -> str:
    """本文・サーフェス上の本文・補助テキストの最小コントラスト比で AAA / AA / A / F を返す"""
    c = theme.colors
    min_ratio = min(
        contrast_ratio(c.text, c.background),
        contrast_ratio(c.text, c.surface),
        contrast_ratio(c.text_secondary, c.background),
    )
    if min_ratio >= 7:
        return "AAA"
    if min_ratio >= 4.5:
        return "AA"
    if min_ratio >= 3:
        return "A"
    return "F"
