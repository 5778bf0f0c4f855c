"""
スタイルシートの収集と解析
HTML内の <link rel="stylesheet">・<style>タグ・style属性からCSSを集め、
@import を深さ制限付きで再帰的に展開する。
訪問済みURL集合と深さはリクエスト単位で持ち、同じURLは1回しか取得しない。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from urllib.parse import urljoin

import tinycss2
from bs4 import BeautifulSoup

from brandtheme.cache import StylesheetCache
from brandtheme.errors import CSSParseError, SizeLimitError, ThemeExtractionError
from brandtheme.fetcher import ContentFetcher
from brandtheme.settings import ExtractorSettings

logger = logging.getLogger(__name__)

# 中身のルールを再帰的に読む条件付きat-rule
NESTED_AT_RULES = frozenset({"media", "supports", "layer", "container", "document"})


@dataclass(frozen=True)
class StyleRule:
    """セレクタと宣言（プロパティ名, 値）の組"""

    selector: str
    declarations: tuple[tuple[str, str], ...]


@dataclass
class ParsedStylesheet:
    rules: list[StyleRule] = field(default_factory=list)
    variables: dict[str, str] = field(default_factory=dict)
    imports: list[str] = field(default_factory=list)


@dataclass
class CollectedStyles:
    """1回の抽出で集めたCSSルール・変数と取得状況"""

    rules: list[StyleRule] = field(default_factory=list)
    variables: dict[str, str] = field(default_factory=dict)
    fetched_urls: list[str] = field(default_factory=list)
    failed_urls: list[str] = field(default_factory=list)

    def add(self, sheet: ParsedStylesheet) -> None:
        self.rules.extend(sheet.rules)
        self.variables.update(sheet.variables)


# =============================================
# CSS解析
# =============================================

def parse_stylesheet(css: str, max_size: int | None = None) -> ParsedStylesheet:
    """
    CSSテキストをルール・カスタムプロパティ・@import先に分解する。

    解析は同期処理で途中中断できないため、上限サイズを超えるテキストは解析前に拒否する。
    壊れたルールは警告を出して読み飛ばし、残りの解析を続ける。
    """
    if max_size is not None and len(css) > max_size:
        raise SizeLimitError(
            f"CSSが大きすぎるため解析しません: {len(css)} bytes（上限 {max_size}）",
            size=len(css), limit=max_size,
        )

    sheet = ParsedStylesheet()
    nodes = tinycss2.parse_stylesheet(css, skip_comments=True, skip_whitespace=True)
    _walk_rules(nodes, sheet, top_level=True)
    return sheet


def parse_declarations(text: str) -> list[tuple[str, str]]:
    """宣言リスト（style属性やルール本文）を (プロパティ名, 値) に分解する"""
    declarations = []
    for decl in tinycss2.parse_declaration_list(text, skip_comments=True, skip_whitespace=True):
        if decl.type != "declaration":
            continue
        # カスタムプロパティは大文字小文字を区別する
        name = decl.name if decl.name.startswith("--") else decl.lower_name
        declarations.append((name, tinycss2.serialize(decl.value).strip()))
    return declarations


def _walk_rules(nodes, sheet: ParsedStylesheet, top_level: bool) -> None:
    for node in nodes:
        try:
            _parse_node(node, sheet, top_level)
        except CSSParseError as e:
            logger.warning("CSSルールを読み飛ばしました: %s", e)


def _parse_node(node, sheet: ParsedStylesheet, top_level: bool) -> None:
    if node.type == "error":
        raise CSSParseError(f"{node.message} (line {node.source_line})")

    if node.type == "qualified-rule":
        selector = tinycss2.serialize(node.prelude).strip()
        if not selector:
            raise CSSParseError(f"セレクタが空です (line {node.source_line})")
        declarations = []
        for decl in tinycss2.parse_declaration_list(node.content, skip_comments=True, skip_whitespace=True):
            if decl.type == "error":
                logger.debug("宣言を読み飛ばしました: %s (%s)", selector, decl.message)
                continue
            if decl.type != "declaration":
                continue
            value = tinycss2.serialize(decl.value).strip()
            if decl.name.startswith("--"):
                sheet.variables[decl.name] = value
                declarations.append((decl.name, value))
            else:
                declarations.append((decl.lower_name, value))
        if declarations:
            sheet.rules.append(StyleRule(selector, tuple(declarations)))
        return

    if node.type == "at-rule":
        keyword = node.lower_at_keyword
        if keyword == "import":
            if not top_level:
                raise CSSParseError("@import はトップレベルでのみ有効です")
            target = _import_target(node.prelude)
            if target is None:
                raise CSSParseError(f"@import の参照先を読み取れません (line {node.source_line})")
            sheet.imports.append(target)
        elif keyword in NESTED_AT_RULES and node.content is not None:
            children = tinycss2.parse_rule_list(node.content, skip_comments=True, skip_whitespace=True)
            _walk_rules(children, sheet, top_level=False)


def _import_target(prelude) -> str | None:
    for token in prelude:
        if token.type in ("whitespace", "comment"):
            continue
        if token.type in ("url", "string"):
            return token.value.strip() or None
        if token.type == "function" and token.lower_name == "url":
            for arg in token.arguments:
                if arg.type == "string":
                    return arg.value.strip() or None
        return None
    return None


# =============================================
# HTMLからの参照先発見
# =============================================

def resolve_url(href: str, base_url: str) -> str | None:
    """相対URL・プロトコル相対URLを絶対URLにする。data: などは対象外"""
    href = (href or "").strip()
    if not href or href.lower().startswith(("data:", "javascript:", "about:", "#")):
        return None
    try:
        absolute = urljoin(base_url, href)
    except ValueError:
        return None
    return absolute.split("#", 1)[0]


def discover_stylesheets(soup: BeautifulSoup, base_url: str) -> list[str]:
    """<link rel="stylesheet"> の参照先を出現順・重複なしで返す"""
    base_tag = soup.find("base", href=True)
    if base_tag:
        base_url = resolve_url(base_tag["href"], base_url) or base_url

    urls: list[str] = []
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        rel = [r.lower() for r in rel]
        if "stylesheet" not in rel or "alternate" in rel:
            continue
        absolute = resolve_url(link["href"], base_url)
        if absolute and absolute not in urls:
            urls.append(absolute)
    return urls


# =============================================
# 収集
# =============================================

@dataclass
class _CollectionState:
    """1リクエスト分の状態。リクエスト間で共有しない"""

    visited: set[str] = field(default_factory=set)
    fetched: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class StylesheetCollector:
    """HTMLとそのURLから、適用されうるCSSルールをすべて集める"""

    def __init__(
        self,
        fetcher: ContentFetcher,
        cache: StylesheetCache,
        settings: ExtractorSettings | None = None,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.settings = settings or fetcher.settings

    async def collect(self, html: str, base_url: str) -> CollectedStyles:
        soup = BeautifulSoup(html, "html.parser")
        links = discover_stylesheets(soup, base_url)
        if len(links) > self.settings.max_stylesheets:
            logger.warning(
                "スタイルシートが多すぎるため先頭 %d 件のみ取得します（%d 件）",
                self.settings.max_stylesheets, len(links),
            )
            links = links[: self.settings.max_stylesheets]

        inline_blocks = [tag.string or "" for tag in soup.find_all("style")]
        state = _CollectionState()

        linked, inline = await asyncio.gather(
            asyncio.gather(*(self._load(url, 0, state) for url in links)),
            asyncio.gather(*(self._parse_inline(css) for css in inline_blocks)),
        )

        collected = CollectedStyles(fetched_urls=state.fetched, failed_urls=state.failed)
        for sheets in linked:
            for sheet in sheets:
                collected.add(sheet)
        for sheet in inline:
            if sheet is not None:
                collected.add(sheet)
        collected.rules.extend(_style_attribute_rules(soup))

        logger.info(
            "CSS収集完了: %s（外部 %d 件取得 / %d 件失敗、インライン %d 件、ルール %d 件）",
            base_url, len(state.fetched), len(state.failed), len(inline_blocks), len(collected.rules),
        )
        return collected

    async def _load(self, url: str, depth: int, state: _CollectionState) -> list[ParsedStylesheet]:
        """
        スタイルシート1件と、その @import 先を読み込む。
        戻り値はカスケード順（import先が先、自身が最後）。
        """
        # 確認と登録の間に await を挟まないので、並行タスク間でも重複取得しない
        if url in state.visited:
            logger.debug("取得済みのためスキップ: %s", url)
            return []
        state.visited.add(url)

        try:
            css = await self._fetch_stylesheet(url)
            sheet = await asyncio.to_thread(parse_stylesheet, css, self.settings.max_content_size)
        except ThemeExtractionError as e:
            logger.warning("スタイルシートを読み飛ばしました: %s (%s)", url, e)
            state.failed.append(url)
            return []
        state.fetched.append(url)

        if not sheet.imports:
            return [sheet]
        if depth >= self.settings.max_import_depth:
            logger.debug("@import の深さ上限に達しました: %s (depth=%d)", url, depth)
            return [sheet]

        targets = [t for t in (resolve_url(i, url) for i in sheet.imports) if t]
        children = await asyncio.gather(*(self._load(t, depth + 1, state) for t in targets))
        ordered = [child for sheets in children for child in sheets]
        ordered.append(sheet)
        return ordered

    async def _fetch_stylesheet(self, url: str) -> str:
        # キャッシュの有無にかかわらず、URLごとに検証する
        vetted_ip = await self.fetcher.resolver.resolve(url)
        cached = self.cache.get(url)
        if cached is not None:
            logger.debug("キャッシュヒット: %s", url)
            return cached

        result = await self.fetcher.fetch(url, vetted_ip, max_bytes=self.settings.max_content_size)
        text = result.text
        self.cache.set(url, text)
        return text

    async def _parse_inline(self, css: str) -> ParsedStylesheet | None:
        # インラインの <style> は @import を辿らない
        try:
            sheet = await asyncio.to_thread(parse_stylesheet, css, self.settings.max_content_size)
        except ThemeExtractionError as e:
            logger.warning("インラインスタイルを読み飛ばしました: %s", e)
            return None
        if sheet.imports:
            logger.debug("インラインスタイルの @import は無視します: %s", sheet.imports)
        return sheet


def _style_attribute_rules(soup: BeautifulSoup) -> list[StyleRule]:
    """style属性をタグ名をセレクタとしたルールとして扱う"""
    rules = []
    for tag in soup.find_all(style=True):
        declarations = parse_declarations(tag["style"])
        if declarations:
            rules.append(StyleRule(tag.name, tuple(declarations)))
    return rules
